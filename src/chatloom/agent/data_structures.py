"""Data structures for the generation engine."""

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from ..catalog import Assistant
from ..llm.models import ToolCall
from ..sessions.models import StopReason

if TYPE_CHECKING:
    from ..tools.base import ToolCallResult


class GenerationRequest(BaseModel):
    """One chat turn to generate a response for (never persisted).

    Attributes:
        session_id: Session the message belongs to
        message_id: Message to (re)generate; a new id is assigned when None
        input: Raw user input
        context: Extra context the answer must be based on
        image: Image reference attached to the turn
        assistant: Resolved assistant
    """

    session_id: str
    message_id: str | None = None
    input: str
    context: str | None = None
    image: str | None = None
    assistant: Assistant


class GenerationState(str, Enum):
    """Lifecycle of a live message."""

    PENDING = "pending"
    STREAMING = "streaming"
    FINISHED = "finished"
    ERRORED = "errored"
    CANCELLED = "cancelled"
    MISSING_CREDENTIAL = "missing-credential"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_REASONS

    @property
    def stop_reason(self) -> StopReason | None:
        return _TERMINAL_REASONS.get(self)


_TERMINAL_REASONS = {
    GenerationState.FINISHED: StopReason.FINISH,
    GenerationState.ERRORED: StopReason.ERROR,
    GenerationState.CANCELLED: StopReason.CANCEL,
    GenerationState.MISSING_CREDENTIAL: StopReason.APIKEY,
}


class GenerationCallbacks:
    """Event sink shared by both execution modes.

    Events arrive in provider emission order. Subclasses override what they need.
    """

    def on_token(self, text: str) -> None:
        pass

    def on_tool_start(self, tool_call: ToolCall) -> None:
        pass

    def on_tool_end(self, tool_call: ToolCall, result: "ToolCallResult") -> None:
        pass


class UsageSummary(BaseModel):
    """Summary of LLM token usage across the turns of one generation.

    Attributes:
        total_calls: Total number of provider turns
        total_input_tokens: Total input tokens across all turns
        total_output_tokens: Total output tokens across all turns
    """

    total_calls: int = Field(default=0, description="Total provider turns")
    total_input_tokens: int = Field(default=0, description="Total input tokens")
    total_output_tokens: int = Field(default=0, description="Total output tokens")

    def add_usage(self, usage: dict[str, int] | None) -> None:
        """Add usage reported at the end of one turn."""
        self.total_calls += 1
        if usage:
            self.total_input_tokens += usage.get("prompt_tokens", 0)
            self.total_output_tokens += usage.get("completion_tokens", 0)


class ExecutionResult(BaseModel):
    """What an executor returns once the provider is done.

    Attributes:
        output: Final answer (text of the last turn)
        steps: Provider turns taken
        usage: Token usage
        status: "completed" or "max_steps_reached"
    """

    output: str
    steps: int = 1
    usage: UsageSummary = Field(default_factory=UsageSummary)
    status: str = "completed"
