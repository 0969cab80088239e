"""Configuration constants and logging setup.

Centralizes defaults and per-provider bounds used across the engine.
"""

import logging

# Generation parameter defaults (used when the user has no override)
DEFAULT_TEMPERATURE = 0.5
DEFAULT_TOP_P = 1.0
DEFAULT_TOP_K = 5
DEFAULT_MESSAGE_LIMIT = 30  # Prior human/assistant pairs forwarded to the provider

DEFAULT_SYSTEM_PROMPT = "You're a helpful assistant that can help me with my questions."
DEFAULT_ASSISTANT = "gpt-4o-mini"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
DEFAULT_WEB_SEARCH_ENGINE = "duckduckgo"

# Tool configuration
IMAGE_GENERATION_MODEL = "dall-e-3"
MEMORY_MODEL = "gpt-4o"
WEB_SEARCH_MAX_RESULTS = 5

# Agent execution
MAX_AGENT_STEPS = 5  # Provider turns before the agent gives up on tool calls

# Operator-managed credentials: family -> environment variable
OPERATOR_CREDENTIAL_ENV = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

# Families that can run without any credential
CREDENTIAL_OPTIONAL_FAMILIES = frozenset({"ollama"})

# Bounded retry attempts, handled inside each provider adapter
PROVIDER_MAX_RETRIES = {
    "openai": 2,
    "anthropic": 2,
    "gemini": 1,
    "ollama": 2,
}

# Parameter bounds per family: (min, max)
TEMPERATURE_BOUNDS = {
    "openai": (0.0, 2.0),
    "anthropic": (0.0, 1.0),
    "gemini": (0.0, 2.0),
    "ollama": (0.0, 2.0),
}
TOP_P_BOUNDS = (0.0, 1.0)
TOP_K_BOUNDS = (1, 500)

# OpenAI's chat API has no top-k parameter
TOP_K_FAMILIES = frozenset({"anthropic", "gemini", "ollama"})

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str = "WARNING") -> None:
    """Install a Rich log handler on the root logger.

    Args:
        level: Logging level name (debug, info, warning, error)
    """
    from rich.logging import RichHandler

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
