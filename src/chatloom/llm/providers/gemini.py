"""Google Gemini LLM provider implementation.

Uses the official Google GenAI SDK for async chat completions.
Reference: https://github.com/googleapis/python-genai

Note: Gemini can return empty responses due to safety filtering or service issues.
This implementation includes retry logic and relaxed safety settings.
"""

import asyncio
import base64
import logging
from collections.abc import AsyncIterator
from typing import Any

from google import genai
from google.genai import errors, types

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

# Default safety settings - relaxed to avoid blocking code-related content
DEFAULT_SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_ONLY_HIGH"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_ONLY_HIGH"),
]


def _image_part(url: str) -> types.Part:
    data_url = split_data_url(url)
    if data_url is not None:
        media_type, data = data_url
        return types.Part.from_bytes(data=base64.b64decode(data), mime_type=media_type)
    return types.Part.from_uri(file_uri=url, mime_type="image/*")


def _tool_config(enabled: bool) -> types.ToolConfig:
    # mode=NONE prevents UNEXPECTED_TOOL_CALL when prompts contain function-like syntax
    return types.ToolConfig(
        function_calling_config=types.FunctionCallingConfig(mode="AUTO" if enabled else "NONE")
    )


def _usage_from(metadata: Any) -> dict[str, int]:
    return {
        "prompt_tokens": metadata.prompt_token_count or 0,
        "completion_tokens": metadata.candidates_token_count or 0,
        "total_tokens": metadata.total_token_count or 0,
    }


class GeminiProvider(LLMProvider):
    """Google Gemini LLM provider implementation.

    Hidden design decisions:
    - Google GenAI client initialization
    - Message format conversion (function calls and responses as parts)
    - Retry logic for empty responses and transient server errors
    - Relaxed safety settings to avoid blocking code content
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        max_retries: int = 1,
        **client_kwargs: Any
    ):
        """Initialize Gemini provider.

        Args:
            api_key: Google AI API key
            model: Default model (gemini-2.5-flash, gemini-2.5-pro, ...)
            max_retries: Extra attempts after a failed or empty response
            **client_kwargs: Additional kwargs for Client
        """
        self._model = model
        self._max_retries = max_retries
        self._client = genai.Client(api_key=api_key, **client_kwargs)

    @property
    def family(self) -> BaseModelFamily:
        return BaseModelFamily.GEMINI

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    def format_tools(self, tool_specs: list[dict[str, Any]]) -> list[Any]:
        if not tool_specs:
            return []
        return [
            types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=spec["name"],
                    description=spec["description"],
                    parameters_json_schema=spec["parameters"],
                )
                for spec in tool_specs
            ])
        ]

    def _convert_messages(self, messages: list[LLMMessage]) -> tuple[str | None, list[types.Content]]:
        """Convert prompt messages to Gemini format.

        Args:
            messages: List of prompt messages

        Returns:
            Tuple of (system_instruction, contents)
        """
        system_parts: list[str] = []
        contents: list[types.Content] = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            elif msg.role == "user":
                parts = [types.Part(text=msg.content)]
                if msg.image_url:
                    parts.insert(0, _image_part(msg.image_url))
                contents.append(types.Content(role="user", parts=parts))
            elif msg.role == "assistant":
                parts = [types.Part(text=msg.content)] if msg.content else []
                parts.extend(
                    types.Part.from_function_call(name=tc.tool_name, args=tc.arguments)
                    for tc in msg.tool_calls
                )
                contents.append(types.Content(role="model", parts=parts))
            elif msg.role == "tool":
                part = types.Part.from_function_response(
                    name=msg.name or "",
                    response={"result": msg.content},
                )
                # Responses to one model turn travel together
                previous = contents[-1] if contents else None
                if (
                    previous is not None
                    and previous.role == "user"
                    and previous.parts
                    and all(p.function_response is not None for p in previous.parts)
                ):
                    previous.parts.append(part)
                else:
                    contents.append(types.Content(role="user", parts=[part]))

        system_instruction = "\n\n".join(part for part in system_parts if part) or None
        return system_instruction, contents

    def _extract_content(self, response) -> str:
        """Extract text content from Gemini response, handling empty responses.

        Args:
            response: Gemini GenerateContentResponse

        Returns:
            Text content or empty string
        """
        if response.candidates and len(response.candidates) > 0:
            candidate = response.candidates[0]
            if candidate.content and candidate.content.parts:
                # Join text parts only; function calls are reported separately
                texts = [part.text for part in candidate.content.parts if part.text and not part.thought]
                return "".join(texts)
        return ""

    async def chat_completion(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs: Any
    ) -> LLMResponse:
        """Generate a chat completion using Google Gemini.

        Includes retry logic for empty responses (known Gemini service issue).

        Args:
            messages: Conversation history
            model: Model to use (overrides default)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional Gemini-specific parameters

        Returns:
            LLMResponse with generated content
        """
        model_to_use = model or self._model
        system_instruction, contents = self._convert_messages(messages)

        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            tool_config=_tool_config(False),
            **kwargs
        )
        if max_tokens is not None:
            config.max_output_tokens = max_tokens

        # Retry loop for empty responses (known Gemini issue)
        content = ""
        usage = None
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            response = await self._client.aio.models.generate_content(
                model=model_to_use,
                contents=contents,
                config=config
            )

            if response.usage_metadata:
                usage = _usage_from(response.usage_metadata)

            content = self._extract_content(response)

            if content:
                break

            if attempt < attempts - 1:
                logger.info("Empty Gemini response, retrying (%d/%d)", attempt + 1, self._max_retries)
                await asyncio.sleep(0.5 * (attempt + 1))

        return LLMResponse(
            content=content,
            model=model_to_use,
            usage=usage
        )

    async def _open_stream(
        self,
        contents: list[types.Content],
        config: types.GenerateContentConfig,
    ) -> AsyncIterator[types.GenerateContentResponse]:
        """Open a content stream, retrying transient server errors."""
        attempt = 0
        while True:
            try:
                return await self._client.aio.models.generate_content_stream(
                    model=self._model, contents=contents, config=config
                )
            except errors.ServerError as e:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                logger.warning("Gemini server error (%s), retrying (%d/%d)", e, attempt, self._max_retries)
                await asyncio.sleep(0.5 * attempt)

    async def stream(
        self,
        messages: list[LLMMessage],
        params: GenerationParams,
        tools: list[Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one generate_content turn, surfacing function calls."""
        system_instruction, contents = self._convert_messages(messages)

        config = types.GenerateContentConfig(
            temperature=params.temperature,
            top_p=params.top_p,
            top_k=params.top_k,
            max_output_tokens=params.max_tokens,
            system_instruction=system_instruction,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            tools=tools or None,
            tool_config=_tool_config(bool(tools)),
        )

        usage = None
        finish_reason = None

        stream = await self._open_stream(contents, config)
        async for chunk in stream:
            # usage_metadata is complete on the final chunk
            if chunk.usage_metadata:
                usage = _usage_from(chunk.usage_metadata)
            if chunk.candidates and chunk.candidates[0].finish_reason is not None:
                finish_reason = str(chunk.candidates[0].finish_reason.value)

            text = self._extract_content(chunk)
            if text:
                yield TextDelta(text=text)

            for call in chunk.function_calls or []:
                fields: dict[str, Any] = {
                    "tool_name": call.name or "",
                    "arguments": dict(call.args or {}),
                }
                if call.id:
                    fields["id_"] = call.id
                yield ToolCallRequest(tool_call=ToolCall(**fields))

        yield StreamEnd(finish_reason=finish_reason, usage=usage)

    async def close(self) -> None:
        """Close the Gemini client.

        Note: The Google GenAI client doesn't require explicit closing,
        but we implement this for interface consistency.
        """
        pass
