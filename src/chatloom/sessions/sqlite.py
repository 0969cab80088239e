"""SQLite session store.

Provides persistent session storage using a SQLite database.
Uses aiosqlite for async access.
"""

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from .base import SessionStore
from .models import ChatMessage, ChatSession

TITLE_LENGTH = 60


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteSessionStore(SessionStore):
    """SQLite-backed session store.

    Messages are stored as JSON payloads keyed by message id, so
    append-or-replace is a single upsert.
    """

    def __init__(self, path: str | Path = "./chatloom_sessions.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                title TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                message_id TEXT PRIMARY KEY,
                session_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                payload TEXT NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(session_id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_session
            ON messages(session_id, created_at)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _load_messages(self, session_id: str) -> list[ChatMessage]:
        async with self._connection.execute(
            "SELECT payload FROM messages WHERE session_id = ? ORDER BY created_at ASC",
            (session_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [ChatMessage.model_validate_json(payload) for (payload,) in rows]

    async def get_session(self, session_id: str) -> ChatSession | None:
        async with self._connection.execute(
            "SELECT session_id, title, created_at, updated_at FROM sessions WHERE session_id = ?",
            (session_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        sid, title, created_at, updated_at = row
        return ChatSession(
            id=sid,
            title=title,
            messages=await self._load_messages(sid),
            created_at=datetime.fromisoformat(created_at),
            updated_at=datetime.fromisoformat(updated_at),
        )

    async def create_session(self, title: str | None = None) -> ChatSession:
        session = ChatSession(title=title)
        await self._connection.execute("""
            INSERT INTO sessions (session_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?)
        """, (
            session.id,
            session.title,
            session.created_at.isoformat(),
            session.updated_at.isoformat()
        ))
        await self._connection.commit()
        return session

    async def append_or_replace_message(self, session_id: str, message: ChatMessage) -> None:
        async with self._connection.execute(
            "SELECT 1 FROM sessions WHERE session_id = ?",
            (session_id,)
        ) as cursor:
            if await cursor.fetchone() is None:
                raise KeyError(f"Session not found: {session_id}")

        await self._connection.execute("""
            INSERT INTO messages (message_id, session_id, created_at, payload)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(message_id) DO UPDATE SET payload = excluded.payload
        """, (
            message.id,
            session_id,
            message.created_at.isoformat(),
            message.model_dump_json()
        ))

        await self._connection.execute("""
            UPDATE sessions
            SET updated_at = ?, title = COALESCE(title, ?)
            WHERE session_id = ?
        """, (_now(), message.raw_human[:TITLE_LENGTH] or None, session_id))

        await self._connection.commit()

    async def list_sessions(self) -> list[ChatSession]:
        async with self._connection.execute(
            "SELECT session_id FROM sessions ORDER BY updated_at DESC"
        ) as cursor:
            rows = await cursor.fetchall()

        sessions = []
        for (session_id,) in rows:
            session = await self.get_session(session_id)
            if session is not None:
                sessions.append(session)
        return sessions

    async def remove_message(self, session_id: str, message_id: str) -> bool:
        cursor = await self._connection.execute(
            "DELETE FROM messages WHERE session_id = ? AND message_id = ?",
            (session_id, message_id)
        )
        await self._connection.commit()
        return cursor.rowcount > 0

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
