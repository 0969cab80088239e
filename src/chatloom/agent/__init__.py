"""Generation engine: orchestrator, execution modes and history selection."""

from .data_structures import (
    ExecutionResult,
    GenerationCallbacks,
    GenerationRequest,
    GenerationState,
    UsageSummary,
)
from .executor import ChainExecutor, ToolCallingAgentExecutor
from .history import history_to_messages, select_history_pairs
from .orchestrator import GenerationOrchestrator, LiveGeneration

__all__ = [
    "ExecutionResult",
    "GenerationCallbacks",
    "GenerationRequest",
    "GenerationState",
    "UsageSummary",
    "ChainExecutor",
    "ToolCallingAgentExecutor",
    "history_to_messages",
    "select_history_pairs",
    "GenerationOrchestrator",
    "LiveGeneration",
]
