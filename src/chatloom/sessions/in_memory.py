"""In-memory session store.

Simple dict-based storage for session-only use.
Data is lost when the application exits.
"""

from .base import SessionStore
from .models import ChatMessage, ChatSession


class InMemorySessionStore(SessionStore):
    """In-memory session store (process lifetime only).

    Returned sessions are deep copies, so callers never mutate stored state.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, ChatSession] = {}

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def get_session(self, session_id: str) -> ChatSession | None:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session is not None else None

    async def create_session(self, title: str | None = None) -> ChatSession:
        session = ChatSession(title=title)
        self._sessions[session.id] = session
        return session.model_copy(deep=True)

    async def append_or_replace_message(self, session_id: str, message: ChatMessage) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        session.upsert_message(message)

    async def list_sessions(self) -> list[ChatSession]:
        sessions = sorted(self._sessions.values(), key=lambda s: s.updated_at, reverse=True)
        return [s.model_copy(deep=True) for s in sessions]

    async def remove_message(self, session_id: str, message_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        remaining = [m for m in session.messages if m.id != message_id]
        removed = len(remaining) != len(session.messages)
        session.messages = remaining
        return removed

    @property
    def backend_type(self) -> str:
        return "memory"
