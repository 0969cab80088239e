"""
Chatloom: generation orchestration for a multi-provider chat client.

Each module hides one design decision: provider wire formats, session
persistence, tool selection, prompt layout and the generation lifecycle.
"""

__version__ = "0.1.0"

from .agent import GenerationOrchestrator, GenerationRequest
from .catalog import Assistant, ModelCatalog, ModelInfo
from .sessions import ChatMessage, ChatSession, StopReason, create_session_store

__all__ = [
    "Assistant",
    "ChatMessage",
    "ChatSession",
    "GenerationOrchestrator",
    "GenerationRequest",
    "ModelCatalog",
    "ModelInfo",
    "StopReason",
    "create_session_store",
]
