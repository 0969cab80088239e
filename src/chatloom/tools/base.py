"""Tool infrastructure shared by every invocable tool."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel

from ..llm.models import ToolCall
from ..sessions.models import ToolInvocationRecord

logger = logging.getLogger(__name__)

SendToolResponse = Callable[[ToolInvocationRecord], None]


class ToolCallResult(BaseModel):
    """Result of executing a tool call.

    Attributes:
        tool_call_id: ID of the tool call that was executed
        content: The result content handed back to the model
        error: Whether an error occurred
    """

    tool_call_id: str
    content: str
    error: bool = False


class BaseTool(ABC):
    """Abstract base class for tools.

    Tools never raise out of execute(): failures come back as a
    ToolCallResult with error=True and a textual surrogate the model can
    react to.
    """

    def __init__(self, send_tool_response: SendToolResponse | None = None) -> None:
        self._send_tool_response = send_tool_response

    def set_response_callback(self, callback: SendToolResponse | None) -> None:
        """Set the callback that reports results into the live message."""
        self._send_tool_response = callback

    def report(self, record: ToolInvocationRecord) -> None:
        """Send a tool record to the live message, if anyone is listening."""
        if self._send_tool_response is not None:
            self._send_tool_response(record)

    @property
    @abstractmethod
    def name(self) -> str:
        """Get the tool name (also its capability key)."""
        pass

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.name.replace("_", " ").title()

    @property
    @abstractmethod
    def description(self) -> str:
        """Get the tool description for the LLM."""
        pass

    @property
    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        """Get the JSON schema for tool parameters."""
        pass

    @abstractmethod
    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Execute the tool call.

        Args:
            tool_call: The tool call to execute

        Returns:
            ToolCallResult with the execution result
        """
        pass

    async def aclose(self) -> None:
        """Release clients held by the tool."""
        pass

    def to_llm_spec(self) -> dict[str, Any]:
        """Convert tool to LLM-friendly specification.

        Returns:
            Dictionary describing the tool for the LLM
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema
        }
