"""Reconciles live streaming messages with the persisted session."""

import logging
from collections.abc import Callable

from .base import SessionStore
from .models import ChatMessage, ChatSession, ToolInvocationRecord

logger = logging.getLogger(__name__)

SessionListener = Callable[[ChatSession, ChatMessage], None]


class SessionSynchronizer:
    """Owns the in-memory copy of the sessions touched by generations.

    publish() applies live snapshots to the in-memory session only;
    commit() performs the single durable write of a terminal message.
    Sessions are only changed by whole-message replace or append.
    """

    def __init__(self, store: SessionStore):
        self._store = store
        self._sessions: dict[str, ChatSession] = {}
        self._last_published: dict[str, ChatMessage] = {}
        self._committed: set[str] = set()
        self._listeners: list[SessionListener] = []

    @property
    def store(self) -> SessionStore:
        return self._store

    def subscribe(self, listener: SessionListener) -> None:
        """Register a callback invoked with (session, message) after each applied publish."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def load(self, session_id: str) -> ChatSession | None:
        """Fetch a session from the store and make it the in-memory copy."""
        session = await self._store.get_session(session_id)
        if session is None:
            self._sessions.pop(session_id, None)
            return None
        self._sessions[session_id] = session
        return session

    def session(self, session_id: str) -> ChatSession | None:
        return self._sessions.get(session_id)

    def unload(self, session_id: str) -> None:
        """Drop the in-memory copy of a session; the store is untouched."""
        self._sessions.pop(session_id, None)

    def is_committed(self, message_id: str) -> bool:
        return message_id in self._committed

    def begin_message(self, message_id: str) -> None:
        """Allow a message id to be streamed and committed again (regeneration)."""
        self._committed.discard(message_id)
        self._last_published.pop(message_id, None)

    def end_message(self, message_id: str) -> None:
        """Forget a message whose generation has terminated.

        The caller must already drop its own late events for the message.
        """
        self._committed.discard(message_id)
        self._last_published.pop(message_id, None)

    def publish(
        self,
        live: ChatMessage,
        tools: list[ToolInvocationRecord] | None = None,
    ) -> bool:
        """Merge a live snapshot into the in-memory session.

        Args:
            live: Current snapshot of the message
            tools: Tool records to attach (replaces live.tools when given)

        Returns:
            True if the snapshot was applied, False if skipped as a duplicate
            or because the message was already committed
        """
        snapshot = live if tools is None else live.model_copy(update={"tools": list(tools)})

        if self.is_committed(snapshot.id):
            logger.debug("Ignoring publish for committed message %s", snapshot.id)
            return False
        if self._last_published.get(snapshot.id) == snapshot:
            return False

        self._last_published[snapshot.id] = snapshot
        session = self._sessions.get(snapshot.session_id)
        if session is None:
            return True

        session.upsert_message(snapshot)
        for listener in list(self._listeners):
            listener(session, snapshot)
        return True

    async def commit(self, session_id: str, final: ChatMessage) -> ChatMessage | None:
        """Durably write a terminal message, once per message.

        Tool records are written with their loading flags cleared.

        Returns:
            The message as written, or None if it was already committed

        Raises:
            ValueError: If the message is not terminal
        """
        if not final.stop:
            raise ValueError(f"Message {final.id} is not terminal")
        if self.is_committed(final.id):
            logger.warning("Message %s already committed", final.id)
            return None

        final = final.with_tools_settled()
        self.publish(final)
        self._committed.add(final.id)
        self._last_published.pop(final.id, None)

        await self._store.append_or_replace_message(session_id, final)
        logger.info(
            "Committed message %s to session %s (%s)",
            final.id,
            session_id,
            final.stop_reason.value if final.stop_reason else None,
        )
        return final
