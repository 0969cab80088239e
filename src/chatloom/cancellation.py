"""Cancellation tokens for in-flight generations.

A token is the only way to stop a running stream. Provider streams and tool
invocations are awaited through the token, so once it fires nothing else
from the aborted call reaches the consumer.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar
from uuid import uuid4

from .errors import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cancellation signal shared by one generation and everything it spawns."""

    def __init__(self, generation_id: str | None = None):
        self.generation_id = generation_id or str(uuid4())
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Trigger the token.

        Idempotent: only the first call fires the callbacks.

        Returns:
            True if this call cancelled the token, False if it already was
        """
        if self._event.is_set():
            return False
        self._event.set()
        logger.debug("Generation %s cancelled", self.generation_id)
        for callback in list(self._callbacks):
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once on cancellation."""
        if self.cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise GenerationCancelled(f"Generation {self.generation_id} was cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await something unless the token fires first.

        The pending work is cancelled when the token wins the race.

        Raises:
            GenerationCancelled: If the token is or becomes cancelled
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            work.cancel()
            # The work must settle before its source can be closed
            await asyncio.gather(work, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            if not work.done():
                work.cancel()
            # Let the aborted call unwind; its outcome is discarded
            await asyncio.gather(work, return_exceptions=True)
            self.raise_if_cancelled()
        return work.result()

    async def iterate(self, source: AsyncIterator[T]) -> AsyncIterator[T]:
        """Re-yield items from an async iterator until it ends or the token fires.

        Raises:
            GenerationCancelled: When the token fires mid-stream
        """
        iterator = source.__aiter__()
        try:
            while True:
                try:
                    item = await self.guard(iterator.__anext__())
                except StopAsyncIteration:
                    return
                yield item
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()


@dataclass
class _ActiveGeneration:
    token: CancellationToken
    done: asyncio.Event = field(default_factory=asyncio.Event)


class CancellationController:
    """Owns one token per active generation, keyed by session id.

    Starting a generation for a session synchronously aborts whatever was
    running there and hands back a way to await its termination.
    """

    def __init__(self) -> None:
        self._active: dict[str, _ActiveGeneration] = {}
        self._generations: dict[str, _ActiveGeneration] = {}

    def begin(self, session_id: str) -> tuple[CancellationToken, asyncio.Event | None]:
        """Register a new generation for a session.

        Any previous generation for the same session is cancelled before
        this returns.

        Returns:
            Tuple of (new token, termination event of the previous generation or None)
        """
        previous = self._active.get(session_id)
        previous_done = None
        if previous is not None and not previous.done.is_set():
            previous.token.cancel()
            previous_done = previous.done
            logger.info("Aborted running generation for session %s", session_id)

        token = CancellationToken()
        active = _ActiveGeneration(token=token)
        self._active[session_id] = active
        self._generations[token.generation_id] = active
        return token, previous_done

    def finish(self, session_id: str, token: CancellationToken) -> None:
        """Mark a generation as terminated, even if it was superseded."""
        active = self._generations.pop(token.generation_id, None)
        if active is None:
            return
        active.done.set()
        if self._active.get(session_id) is active:
            del self._active[session_id]

    def cancel(self, session_id: str) -> bool:
        """Cancel the active generation of a session.

        Returns:
            True if a running generation was cancelled
        """
        active = self._active.get(session_id)
        if active is None:
            return False
        return active.token.cancel()

    def is_active(self, session_id: str) -> bool:
        active = self._active.get(session_id)
        return active is not None and not active.done.is_set()

    async def wait_idle(self, session_id: str) -> None:
        """Wait until the session has no running generation."""
        active = self._active.get(session_id)
        if active is not None:
            await active.done.wait()
