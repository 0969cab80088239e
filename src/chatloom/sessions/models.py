"""Data models for chat sessions.

These models define the structure of sessions and messages,
independent of the storage backend used.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StopReason(str, Enum):
    """Why a message stopped generating."""

    FINISH = "finish"
    ERROR = "error"
    CANCEL = "cancel"
    APIKEY = "apikey"


class ToolInvocationRecord(BaseModel):
    """One tool invocation shown alongside a message.

    Identified by tool_name within its message.
    """

    model_config = ConfigDict(frozen=True)

    tool_name: str
    tool_args: dict[str, Any] = Field(default_factory=dict)
    render_args: dict[str, Any] | None = Field(
        default=None,
        description="Renderable payload, e.g. {'image': url}"
    )
    response: Any = None
    tool_loading: bool = False


class ChatMessage(BaseModel):
    """A human turn and the assistant output generated for it.

    Snapshots are immutable; streaming produces a new snapshot per update
    via model_copy(update=...).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    raw_human: str
    raw_ai: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    is_loading: bool = False
    stop: bool = False
    stop_reason: StopReason | None = None
    tools: list[ToolInvocationRecord] = Field(default_factory=list)
    assistant_key: str | None = None
    model_key: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stop

    def with_tools_settled(self) -> "ChatMessage":
        """Copy with every tool record's loading flag cleared."""
        return self.model_copy(update={
            "tools": [t.model_copy(update={"tool_loading": False}) for t in self.tools]
        })


class ChatSession(BaseModel):
    """A conversation: the unit of persistence."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def sorted_messages(self) -> list[ChatMessage]:
        """Messages ordered by creation time."""
        return sorted(self.messages, key=lambda m: m.created_at)

    def get_message(self, message_id: str) -> ChatMessage | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def upsert_message(self, message: ChatMessage) -> None:
        """Replace the message with the same id, or append it."""
        for index, existing in enumerate(self.messages):
            if existing.id == message.id:
                self.messages[index] = message
                break
        else:
            self.messages.append(message)
        if self.title is None and message.raw_human:
            self.title = message.raw_human[:60]
        self.updated_at = _utcnow()
