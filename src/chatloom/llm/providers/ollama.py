"""Ollama LLM provider implementation.

Talks to a self-hosted Ollama server through its OpenAI-compatible endpoint,
so only the connection details differ from the OpenAI adapter.
"""

from typing import Any

import httpx

from ... import config
from ..models import BaseModelFamily, GenerationParams
from .openai import OpenAIProvider

# Ollama ignores the key but the OpenAI SDK requires one
PLACEHOLDER_API_KEY = "ollama"


async def fetch_ollama_models(base_url: str = config.DEFAULT_OLLAMA_BASE_URL, timeout: float = 5.0) -> list[str]:
    """List model names installed on an Ollama server.

    Args:
        base_url: Ollama server URL
        timeout: Request timeout in seconds

    Returns:
        Model names reported by GET /api/tags
    """
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(f"{base_url.rstrip('/')}/api/tags")
        response.raise_for_status()
        payload = response.json()
    return [model["name"] for model in payload.get("models", []) if model.get("name")]


class OllamaProvider(OpenAIProvider):
    """Ollama provider using the OpenAI-compatible API.

    Hidden design decisions:
    - Server URL resolution (no API key needed)
    - top-k forwarding through the request body
    """

    def __init__(
        self,
        model: str,
        base_url: str = config.DEFAULT_OLLAMA_BASE_URL,
        api_key: str | None = None,
        max_retries: int = 2,
        **client_kwargs: Any
    ):
        """Initialize Ollama provider.

        Args:
            model: Model name as installed on the server (e.g. 'llama3.1')
            base_url: Ollama server URL (default: http://localhost:11434)
            api_key: Optional key for servers behind an authenticating proxy
            max_retries: Retry attempts handled by the SDK
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._base_url = base_url.rstrip("/")
        super().__init__(
            api_key=api_key or PLACEHOLDER_API_KEY,
            model=model,
            base_url=f"{self._base_url}/v1",
            max_retries=max_retries,
            **client_kwargs
        )

    @property
    def family(self) -> BaseModelFamily:
        return BaseModelFamily.OLLAMA

    @property
    def base_url(self) -> str:
        return self._base_url

    def _sampling_params(self, params: GenerationParams) -> dict[str, Any]:
        sampling = {
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
        }
        if params.top_k is not None:
            sampling["extra_body"] = {"top_k": params.top_k}
        return sampling
