"""Chat session storage and live-message synchronization."""

from .base import SessionStore
from .factory import create_session_store
from .models import ChatMessage, ChatSession, StopReason, ToolInvocationRecord
from .synchronizer import SessionSynchronizer

__all__ = [
    "SessionStore",
    "ChatMessage",
    "ChatSession",
    "StopReason",
    "ToolInvocationRecord",
    "SessionSynchronizer",
    "create_session_store",
]
