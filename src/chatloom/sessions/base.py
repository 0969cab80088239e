"""Abstract base class for session storage backends.

This module defines the interface for chat session storage.
The abstraction hides:
- Storage format (JSON, SQLite, etc.)
- Persistence mechanism (file, database, in-memory)
- Connection management
"""

from abc import ABC, abstractmethod

from .models import ChatMessage, ChatSession


class SessionStore(ABC):
    """Abstract session store.

    The generation engine reads one session per request and writes whole
    messages back; it never holds the full session list.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the storage backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the storage backend gracefully."""

    @abstractmethod
    async def get_session(self, session_id: str) -> ChatSession | None:
        """Retrieve a session, or None if it does not exist."""

    @abstractmethod
    async def create_session(self, title: str | None = None) -> ChatSession:
        """Create and persist an empty session."""

    @abstractmethod
    async def append_or_replace_message(self, session_id: str, message: ChatMessage) -> None:
        """Replace the message with the same id, or append it.

        Raises:
            KeyError: If the session does not exist
        """

    @abstractmethod
    async def list_sessions(self) -> list[ChatSession]:
        """All sessions, most recently updated first."""

    @abstractmethod
    async def remove_message(self, session_id: str, message_id: str) -> bool:
        """Delete a message.

        Returns:
            True if a message was removed
        """

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
