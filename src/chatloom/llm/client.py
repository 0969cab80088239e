"""Streaming client bound to one model, one parameter set and one token."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from ..cancellation import CancellationToken
from ..errors import GenerationCancelled, ProviderError
from .base import LLMProvider
from .models import BaseModelFamily, GenerationParams, LLMMessage, StreamEvent

logger = logging.getLogger(__name__)


class StreamingClient:
    """A provider bound to clamped params, a cancellation token and optional tools.

    Instances are never mutated after construction; bind_tools() returns a
    new client sharing the same provider.
    """

    def __init__(
        self,
        provider: LLMProvider,
        params: GenerationParams,
        token: CancellationToken,
        tools: list[Any] | None = None,
    ):
        self._provider = provider
        self._params = params
        self._token = token
        self._tools = list(tools) if tools else []

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    @property
    def family(self) -> BaseModelFamily:
        return self._provider.family

    @property
    def model(self) -> str:
        return self._provider.model

    @property
    def params(self) -> GenerationParams:
        return self._params

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def has_tools(self) -> bool:
        return bool(self._tools)

    def bind_tools(
        self,
        tool_specs: list[dict[str, Any]],
        token: CancellationToken | None = None,
    ) -> "StreamingClient":
        """Return a new client with tools converted to the family's native schema.

        Args:
            tool_specs: Generic specs with 'name', 'description', 'parameters'
            token: Token for the bound client (defaults to this client's token)
        """
        return StreamingClient(
            provider=self._provider,
            params=self._params,
            token=token or self._token,
            tools=self._provider.format_tools(tool_specs),
        )

    async def stream(self, messages: list[LLMMessage]) -> AsyncIterator[StreamEvent]:
        """Stream one turn through the cancellation token.

        Raises:
            GenerationCancelled: If the token fires before the turn completes
            ProviderError: For any other failure raised by the provider
        """
        events = self._provider.stream(messages, self._params, self._tools or None)
        try:
            async for event in self._token.iterate(events):
                yield event
        except GenerationCancelled:
            raise
        except Exception as e:
            if self._token.cancelled:
                raise GenerationCancelled(str(e)) from e
            logger.warning("%s stream failed: %s", self.family.value, e)
            raise ProviderError(self.family.value, str(e), original=e) from e

    async def aclose(self) -> None:
        await self._provider.close()
