import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from ..base import LLMProvider
from ..models import (
    BaseModelFamily,
    GenerationParams,
    LLMMessage,
    LLMResponse,
    StreamEnd,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallRequest,
)

logger = logging.getLogger(__name__)

# Reasoning models reject sampling parameters and use max_completion_tokens
REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")


def _is_reasoning_model(model: str) -> bool:
    """Check if a model is an OpenAI reasoning model."""
    return model.startswith(REASONING_MODEL_PREFIXES)


def _messages_to_openai_format(messages: list[LLMMessage]) -> list[dict[str, Any]]:
    """Convert prompt messages to Chat Completions format.

    Handles multimodal user turns, assistant tool calls and tool results.
    """
    openai_messages: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "tool":
            openai_messages.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content,
            })
        elif msg.role == "assistant" and msg.tool_calls:
            openai_messages.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {
                        "id": tc.id_,
                        "type": "function",
                        "function": {
                            "name": tc.tool_name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ],
            })
        elif msg.role == "user" and msg.image_url:
            openai_messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": msg.content},
                    {"type": "image_url", "image_url": {"url": msg.image_url}},
                ],
            })
        else:
            openai_messages.append({"role": msg.role, "content": msg.content})

    return openai_messages


def _parse_arguments(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding malformed tool arguments: %.100s", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider implementation.

    Hidden design decisions:
    - OpenAI API client initialization
    - Message format conversion
    - Tool-call delta accumulation during streaming
    - Parameter routing for reasoning models
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        organization: str | None = None,
        max_retries: int = 2,
        **client_kwargs: Any
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Default model to use
            base_url: Optional custom API base URL
            organization: Optional organization ID
            max_retries: Retry attempts handled by the SDK
            **client_kwargs: Additional kwargs for AsyncOpenAI client
        """
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            max_retries=max_retries,
            **client_kwargs
        )

    @property
    def family(self) -> BaseModelFamily:
        return BaseModelFamily.OPENAI

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def format_tools(self, tool_specs: list[dict[str, Any]]) -> list[Any]:
        return [
            {
                "type": "function",
                "function": {
                    "name": spec["name"],
                    "description": spec["description"],
                    "parameters": spec["parameters"],
                },
            }
            for spec in tool_specs
        ]

    def _sampling_params(self, params: GenerationParams) -> dict[str, Any]:
        """Build sampling parameters for a streaming request."""
        if _is_reasoning_model(self._model):
            return {"max_completion_tokens": params.max_tokens}
        return {
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
        }

    async def chat_completion(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """Generate a chat completion using OpenAI.

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional OpenAI-specific parameters

        Returns:
            LLMResponse with generated content
        """
        model_to_use = model or self._model

        # Build request params, only including max_tokens if set
        request_params: dict[str, Any] = {
            "model": model_to_use,
            "messages": _messages_to_openai_format(messages),
            **kwargs
        }
        if not _is_reasoning_model(model_to_use):
            request_params["temperature"] = temperature
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens

        completion = await self._client.chat.completions.create(**request_params)

        usage = None
        if completion.usage:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens
            }

        return LLMResponse(
            content=completion.choices[0].message.content or "",
            model=completion.model,
            usage=usage
        )

    async def stream(
        self,
        messages: list[LLMMessage],
        params: GenerationParams,
        tools: list[Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one Chat Completions turn, accumulating tool-call deltas."""
        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": _messages_to_openai_format(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
            **self._sampling_params(params),
        }
        if tools:
            request_params["tools"] = tools

        stream = await self._client.chat.completions.create(**request_params)

        # index -> {"id", "name", "arguments"}
        pending_calls: dict[int, dict[str, str]] = {}
        finish_reason = None
        usage = None

        async for chunk in stream:
            if chunk.usage is not None:
                usage = {
                    "prompt_tokens": chunk.usage.prompt_tokens,
                    "completion_tokens": chunk.usage.completion_tokens,
                    "total_tokens": chunk.usage.total_tokens,
                }
            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            if choice.delta.content:
                yield TextDelta(text=choice.delta.content)

            for delta in choice.delta.tool_calls or []:
                call = pending_calls.setdefault(delta.index, {"id": "", "name": "", "arguments": ""})
                if delta.id:
                    call["id"] = delta.id
                if delta.function is not None:
                    if delta.function.name:
                        call["name"] += delta.function.name
                    if delta.function.arguments:
                        call["arguments"] += delta.function.arguments

        for index in sorted(pending_calls):
            call = pending_calls[index]
            fields: dict[str, Any] = {
                "tool_name": call["name"],
                "arguments": _parse_arguments(call["arguments"]),
            }
            if call["id"]:
                fields["id_"] = call["id"]
            yield ToolCallRequest(tool_call=ToolCall(**fields))

        yield StreamEnd(finish_reason=finish_reason, usage=usage)

    async def close(self) -> None:
        """Close the OpenAI client.

        Note: Uses the OpenAI SDK's async context manager for proper cleanup.
        See: https://github.com/openai/openai-python#async-usage
        """
        await self._client.close()
