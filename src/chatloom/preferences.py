"""User preference storage.

The engine reads preferences once per request and only ever writes by
appending memory notes.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field

from . import config

logger = logging.getLogger(__name__)


class Preferences(BaseModel):
    """User preferences consumed by the generation engine."""

    default_assistant: str = config.DEFAULT_ASSISTANT
    system_prompt: str = config.DEFAULT_SYSTEM_PROMPT
    memories: list[str] = Field(default_factory=list)
    message_limit: int = Field(default=config.DEFAULT_MESSAGE_LIMIT, ge=0)
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_tokens: int | None = None
    default_plugins: list[str] = Field(default_factory=list)
    default_web_search_engine: str = config.DEFAULT_WEB_SEARCH_ENGINE
    ollama_base_url: str = config.DEFAULT_OLLAMA_BASE_URL
    api_keys: dict[str, str] = Field(
        default_factory=dict,
        description="User-supplied credentials by model family"
    )


def merge_memories(existing: list[str], notes: list[str]) -> list[str]:
    """Append notes that are not already remembered, keeping order."""
    merged = list(existing)
    seen = {m.strip().lower() for m in existing}
    for note in notes:
        key = note.strip().lower()
        if key and key not in seen:
            merged.append(note.strip())
            seen.add(key)
    return merged


class PreferenceStore(ABC):
    """Abstract preference store."""

    @abstractmethod
    async def get(self) -> Preferences:
        """Get a snapshot of the current preferences."""

    @abstractmethod
    async def append_memories(self, notes: list[str]) -> list[str]:
        """Append new memory notes.

        Returns:
            The full memory list after the append
        """


class InMemoryPreferenceStore(PreferenceStore):
    """Preferences held in memory for the process lifetime."""

    def __init__(self, preferences: Preferences | None = None):
        self._preferences = preferences or Preferences()

    async def get(self) -> Preferences:
        return self._preferences.model_copy(deep=True)

    async def append_memories(self, notes: list[str]) -> list[str]:
        memories = merge_memories(self._preferences.memories, notes)
        self._preferences = self._preferences.model_copy(update={"memories": memories})
        return list(memories)


class JSONPreferenceStore(PreferenceStore):
    """Preferences persisted to a JSON file.

    A missing file yields defaults; it is created on the first write.
    """

    def __init__(self, path: str | Path = "./chatloom_preferences.json"):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Preferences:
        if not self._path.exists():
            return Preferences()
        return Preferences.model_validate_json(self._path.read_text(encoding="utf-8"))

    def _write(self, preferences: Preferences) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        # Readers only ever see a complete file
        staging = self._path.with_name(f"{self._path.name}.tmp")
        staging.write_text(preferences.model_dump_json(indent=2), encoding="utf-8")
        staging.replace(self._path)

    async def get(self) -> Preferences:
        return self._read()

    async def save(self, preferences: Preferences) -> None:
        """Replace the stored preferences (settings screens, CLI)."""
        async with self._lock:
            self._write(preferences)

    async def append_memories(self, notes: list[str]) -> list[str]:
        async with self._lock:
            preferences = self._read()
            memories = merge_memories(preferences.memories, notes)
            self._write(preferences.model_copy(update={"memories": memories}))
        logger.info("Stored %d memory notes", len(memories))
        return memories
