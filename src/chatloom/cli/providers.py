"""Collaborator factory functions for CLI.

Centralizes creation of stores, registry and orchestrator from environment variables.
Hides configuration details from command implementations.
"""

import os

from ..agent import GenerationOrchestrator
from ..catalog import ModelCatalog
from ..llm import ProviderRegistry
from ..notifications import NotificationChannel
from ..preferences import JSONPreferenceStore
from ..sessions import SessionStore, create_session_store
from ..tools import ToolResolver


def get_session_store() -> SessionStore:
    """Create session store from environment variables.

    Environment variables:
        CHATLOOM_SESSION_BACKEND: memory or sqlite (default: sqlite)
        CHATLOOM_DB_PATH: SQLite file (default: ./chatloom_sessions.db)
    """
    backend = os.getenv("CHATLOOM_SESSION_BACKEND", "sqlite").lower()
    if backend == "sqlite":
        return create_session_store(
            "sqlite",
            path=os.getenv("CHATLOOM_DB_PATH", "./chatloom_sessions.db"),
        )
    return create_session_store(backend)


def get_preference_store() -> JSONPreferenceStore:
    """Create preference store from environment variables.

    Environment variables:
        CHATLOOM_PREFERENCES: JSON file (default: ./chatloom_preferences.json)
    """
    return JSONPreferenceStore(os.getenv("CHATLOOM_PREFERENCES", "./chatloom_preferences.json"))


def build_orchestrator(
    session_store: SessionStore,
    preference_store: JSONPreferenceStore,
    catalog: ModelCatalog,
    notifications: NotificationChannel | None = None,
) -> GenerationOrchestrator:
    """Wire an orchestrator with operator credentials read from the environment."""
    return GenerationOrchestrator(
        session_store=session_store,
        preference_store=preference_store,
        registry=ProviderRegistry(),
        tool_resolver=ToolResolver(),
        catalog=catalog,
        notifications=notifications,
    )
