"""Model and assistant catalog.

Static provider models, models discovered on an Ollama server, and the
assistants (personas) built on top of them.
"""

import logging
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

from . import config
from .llm.models import BaseModelFamily
from .llm.providers.ollama import fetch_ollama_models

logger = logging.getLogger(__name__)

ALL_PLUGINS = ["web_search", "image_generation", "memory"]


class ModelInfo(BaseModel):
    """Provider descriptor for one model."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    base_model: BaseModelFamily
    tokens: int = Field(description="Context window size")
    max_output_tokens: int
    plugins: list[str] = Field(default_factory=list, description="Supported capability keys")
    input_price: float | None = None
    output_price: float | None = None
    is_new: bool = False


class Assistant(BaseModel):
    """A persona bound to one model."""

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    system_prompt: str = config.DEFAULT_SYSTEM_PROMPT
    base_model: str = Field(description="Key of the model the assistant runs on")
    type: Literal["base", "custom"] = "custom"


def _openai(key: str, name: str, is_new: bool = False) -> ModelInfo:
    return ModelInfo(
        key=key,
        name=name,
        base_model=BaseModelFamily.OPENAI,
        tokens=128000,
        max_output_tokens=2048,
        plugins=list(ALL_PLUGINS),
        input_price=5,
        output_price=15,
        is_new=is_new,
    )


def _gemini(key: str, name: str, input_price: float, output_price: float,
            max_output_tokens: int = 8190, is_new: bool = False) -> ModelInfo:
    return ModelInfo(
        key=key,
        name=name,
        base_model=BaseModelFamily.GEMINI,
        tokens=200000,
        max_output_tokens=max_output_tokens,
        input_price=input_price,
        output_price=output_price,
        is_new=is_new,
    )


STATIC_MODELS: list[ModelInfo] = [
    _openai("gpt-4o", "GPT 4o"),
    _openai("o3", "o3", is_new=True),
    _openai("o3-mini", "o3-mini"),
    _openai("gpt-4o-mini", "GPT 4o Mini"),
    _openai("chatgpt-4o-latest", "chatgpt-4o-latest"),
    _gemini("gemini-1.5-pro-latest", "Gemini Pro 1.5", 3.5, 10.5),
    _gemini("gemini-1.5-flash-latest", "Gemini Flash 1.5", 0.35, 1.05),
    _gemini("gemini-2.5-pro-preview-05-06", "Gemini Pro 2.5", 3.5, 10.5, is_new=True),
    _gemini("gemini-pro", "Gemini Pro", 0.5, 1.5, max_output_tokens=4095),
    ModelInfo(
        key="claude-sonnet-4-20250514",
        name="Claude Sonnet 4",
        base_model=BaseModelFamily.ANTHROPIC,
        tokens=200000,
        max_output_tokens=8192,
        plugins=list(ALL_PLUGINS),
        input_price=3,
        output_price=15,
        is_new=True,
    ),
    ModelInfo(
        key="claude-3-5-haiku-latest",
        name="Claude 3.5 Haiku",
        base_model=BaseModelFamily.ANTHROPIC,
        tokens=200000,
        max_output_tokens=8192,
        plugins=["web_search"],
        input_price=0.8,
        output_price=4,
    ),
]


def ollama_model(name: str) -> ModelInfo:
    """Catalog entry for a model served by Ollama."""
    return ModelInfo(
        key=name,
        name=name,
        base_model=BaseModelFamily.OLLAMA,
        tokens=128000,
        max_output_tokens=2048,
        input_price=0,
        output_price=0,
    )


class ModelCatalog:
    """Lookup of models and assistants by key.

    Every model doubles as a "base" assistant using the preferred system
    prompt; custom assistants are layered on top.
    """

    def __init__(
        self,
        models: list[ModelInfo] | None = None,
        custom_assistants: list[Assistant] | None = None,
    ):
        self._models: dict[str, ModelInfo] = {
            m.key: m for m in (STATIC_MODELS if models is None else models)
        }
        self._custom_assistants: dict[str, Assistant] = {
            a.key: a for a in (custom_assistants or [])
        }

    @property
    def models(self) -> list[ModelInfo]:
        return list(self._models.values())

    def get_model_by_key(self, key: str) -> ModelInfo | None:
        return self._models.get(key)

    def add_model(self, model: ModelInfo) -> None:
        self._models[model.key] = model

    def add_custom_assistant(self, assistant: Assistant) -> None:
        self._custom_assistants[assistant.key] = assistant.model_copy(update={"type": "custom"})

    def assistants(self, system_prompt: str = config.DEFAULT_SYSTEM_PROMPT) -> list[Assistant]:
        """All assistants: one base assistant per model, then custom ones."""
        base = [
            Assistant(
                key=m.key,
                name=m.name,
                system_prompt=system_prompt,
                base_model=m.key,
                type="base",
            )
            for m in self._models.values()
        ]
        return base + list(self._custom_assistants.values())

    def get_assistant_by_key(
        self,
        key: str,
        system_prompt: str = config.DEFAULT_SYSTEM_PROMPT,
    ) -> tuple[Assistant, ModelInfo] | None:
        """Resolve an assistant and the model it runs on.

        Returns:
            (assistant, model), or None if either is unknown
        """
        for assistant in self.assistants(system_prompt):
            if assistant.key == key:
                model = self.get_model_by_key(assistant.base_model)
                if model is None:
                    logger.warning("Assistant %s points at unknown model %s", key, assistant.base_model)
                    return None
                return assistant, model
        return None

    def add_ollama_models(self, names: list[str]) -> list[ModelInfo]:
        added = [ollama_model(name) for name in names]
        for model in added:
            self.add_model(model)
        return added

    async def refresh_ollama_models(
        self,
        base_url: str = config.DEFAULT_OLLAMA_BASE_URL,
    ) -> list[ModelInfo]:
        """Discover models installed on an Ollama server.

        An unreachable server yields no models rather than an error.
        """
        try:
            names = await fetch_ollama_models(base_url)
        except httpx.HTTPError as e:
            logger.warning("Could not list Ollama models at %s: %s", base_url, e)
            return []
        logger.info("Discovered %d Ollama models", len(names))
        return self.add_ollama_models(names)
