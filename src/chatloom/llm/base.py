from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from .models import BaseModelFamily, GenerationParams, LLMMessage, LLMResponse, StreamEvent


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This module hides the design decision of which LLM provider to use.
    Implementations must handle provider-specific details like:
    - API client setup and authentication
    - Request/response format conversion (including multimodal parts)
    - Native tool schema conversion and tool-call streaming
    - Bounded retries

    Supports async context manager protocol for proper resource cleanup:
        async with provider:
            async for event in provider.stream(messages, params):
                ...
        # Automatically cleaned up
    """

    @property
    @abstractmethod
    def family(self) -> BaseModelFamily:
        """Provider family this adapter serves."""

    @property
    @abstractmethod
    def model(self) -> str:
        """Model key requests are sent to."""

    @abstractmethod
    def stream(
        self,
        messages: list[LLMMessage],
        params: GenerationParams,
        tools: list[Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one model turn.

        Args:
            messages: Conversation so far, including any tool scratchpad
            params: Clamped generation parameters
            tools: Tools already converted by format_tools(), or None

        Yields:
            TextDelta for generated text, one ToolCallRequest per complete
            tool call, and a final StreamEnd

        Raises:
            Exception: Provider-specific errors during generation
        """

    @abstractmethod
    def format_tools(self, tool_specs: list[dict[str, Any]]) -> list[Any]:
        """Convert generic tool specs into the provider's native tool schema.

        Args:
            tool_specs: Dicts with 'name', 'description' and 'parameters' (JSON schema)

        Returns:
            Provider-native tool definitions
        """

    @abstractmethod
    async def chat_completion(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """Generate a non-streaming chat completion.

        Args:
            messages: List of chat messages forming the conversation history
            model: Model to use (None uses provider's default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Provider-specific parameters

        Returns:
            LLMResponse containing generated content and metadata
        """

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "LLMProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
