"""Anthropic Claude LLM provider implementation.

Uses the official Anthropic Python SDK for async chat completions.
Reference: https://github.com/anthropics/anthropic-sdk-python
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic

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
    split_data_url,
)

logger = logging.getLogger(__name__)


def _image_block(url: str) -> dict[str, Any]:
    data_url = split_data_url(url)
    if data_url is not None:
        media_type, data = data_url
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
    return {"type": "image", "source": {"type": "url", "url": url}}


def _convert_messages(messages: list[LLMMessage]) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert prompt messages to Anthropic format.

    System messages are lifted into the system parameter. Consecutive tool
    results are merged into one user turn, as the API requires.

    Returns:
        Tuple of (system prompt, messages)
    """
    system_parts: list[str] = []
    anthropic_messages: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
        elif msg.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
            }
            previous = anthropic_messages[-1] if anthropic_messages else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                anthropic_messages.append({"role": "user", "content": [block]})
        elif msg.role == "assistant" and msg.tool_calls:
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append({
                    "type": "tool_use",
                    "id": tc.id_,
                    "name": tc.tool_name,
                    "input": tc.arguments,
                })
            anthropic_messages.append({"role": "assistant", "content": content})
        elif msg.role == "user" and msg.image_url:
            anthropic_messages.append({
                "role": "user",
                "content": [_image_block(msg.image_url), {"type": "text", "text": msg.content}],
            })
        else:
            anthropic_messages.append({"role": msg.role, "content": msg.content})

    system_message = "\n\n".join(part for part in system_parts if part) or None
    return system_message, anthropic_messages


class AnthropicProvider(LLMProvider):
    """Anthropic Claude LLM provider implementation.

    Hidden design decisions:
    - Anthropic API client initialization
    - Message format conversion (system message and tool_result handling)
    - Tool-use block assembly from streamed JSON fragments
    - Authentication mechanism
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_retries: int = 2,
        **client_kwargs: Any
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Default model to use (default: claude-sonnet-4-20250514)
            base_url: Optional custom API base URL
            max_retries: Retry attempts handled by the SDK
            **client_kwargs: Additional kwargs for AsyncAnthropic client
        """
        self._model = model
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
            **client_kwargs
        )

    @property
    def family(self) -> BaseModelFamily:
        return BaseModelFamily.ANTHROPIC

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def format_tools(self, tool_specs: list[dict[str, Any]]) -> list[Any]:
        return [
            {
                "name": spec["name"],
                "description": spec["description"],
                "input_schema": spec["parameters"],
            }
            for spec in tool_specs
        ]

    async def chat_completion(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """Generate a chat completion using Anthropic Claude.

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate (default: 4096)
            **kwargs: Additional Anthropic-specific parameters

        Returns:
            LLMResponse with generated content
        """
        system_message, anthropic_messages = _convert_messages(messages)

        request_params: dict[str, Any] = {
            "model": model or self._model,
            "messages": anthropic_messages,
            "temperature": temperature,
            "max_tokens": max_tokens or 4096,  # Anthropic requires max_tokens
            **kwargs
        }
        if system_message:
            request_params["system"] = system_message

        response = await self._client.messages.create(**request_params)

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens
            }

        # Extract content (handle multiple content blocks)
        content = ""
        for block in response.content:
            if hasattr(block, "text"):
                content += block.text

        return LLMResponse(
            content=content,
            model=response.model,
            usage=usage
        )

    async def stream(
        self,
        messages: list[LLMMessage],
        params: GenerationParams,
        tools: list[Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one Messages API turn, assembling tool_use blocks."""
        system_message, anthropic_messages = _convert_messages(messages)

        request_params: dict[str, Any] = {
            "model": self._model,
            "messages": anthropic_messages,
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
        }
        if params.top_k is not None:
            request_params["top_k"] = params.top_k
        if system_message:
            request_params["system"] = system_message
        if tools:
            request_params["tools"] = tools

        input_tokens = 0
        output_tokens = 0
        finish_reason = None
        # content block index -> {"id", "name", "json"}
        tool_blocks: dict[int, dict[str, str]] = {}

        async with self._client.messages.stream(**request_params) as stream:
            async for event in stream:
                event_type = getattr(event, "type", None)

                # message_start contains input_tokens
                if event_type == "message_start":
                    input_tokens = event.message.usage.input_tokens
                elif event_type == "content_block_start" and event.content_block.type == "tool_use":
                    tool_blocks[event.index] = {
                        "id": event.content_block.id,
                        "name": event.content_block.name,
                        "json": "",
                    }
                elif event_type == "content_block_delta":
                    if event.delta.type == "text_delta":
                        yield TextDelta(text=event.delta.text)
                    elif event.delta.type == "input_json_delta" and event.index in tool_blocks:
                        tool_blocks[event.index]["json"] += event.delta.partial_json
                elif event_type == "content_block_stop" and event.index in tool_blocks:
                    block = tool_blocks.pop(event.index)
                    yield ToolCallRequest(tool_call=ToolCall(
                        id_=block["id"],
                        tool_name=block["name"],
                        arguments=self._parse_input(block["json"]),
                    ))
                # message_delta contains output_tokens (cumulative) and the stop reason
                elif event_type == "message_delta":
                    finish_reason = event.delta.stop_reason or finish_reason
                    if event.usage is not None:
                        output_tokens = event.usage.output_tokens

        yield StreamEnd(
            finish_reason=finish_reason,
            usage={
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            },
        )

    @staticmethod
    def _parse_input(raw: str) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding malformed tool input: %.100s", raw)
            return {}
        return parsed if isinstance(parsed, dict) else {}

    async def close(self) -> None:
        """Close the Anthropic client."""
        await self._client.close()
