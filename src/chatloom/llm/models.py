import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .. import config


class BaseModelFamily(str, Enum):
    """Provider category; decides credential source and adapter."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OLLAMA = "ollama"


class ToolCall(BaseModel):
    """A tool invocation requested by the model.

    Attributes:
        id_: Provider-assigned call identifier
        tool_name: Name of the tool to call
        arguments: Arguments for the tool call
    """

    model_config = ConfigDict(frozen=True)

    id_: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class LLMMessage(BaseModel):
    """Provider-agnostic prompt message.

    Assistant messages may carry tool calls; tool messages carry the
    result of one call, linked back by ``tool_call_id``.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"] = Field(
        description="Role of the message sender"
    )
    content: str = Field(default="", description="Text content of the message")
    image_url: str | None = Field(
        default=None,
        description="Optional image reference (remote URL or data URL) for multimodal user turns"
    )
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = Field(default=None, description="Tool name for tool messages")


class TextDelta(BaseModel):
    """A chunk of generated text."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolCallRequest(BaseModel):
    """A complete tool call emitted by the model during a turn."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall


class StreamEnd(BaseModel):
    """End of one provider turn."""

    model_config = ConfigDict(frozen=True)

    type: Literal["end"] = "end"
    finish_reason: str | None = None
    usage: dict[str, int] | None = None


StreamEvent = TextDelta | ToolCallRequest | StreamEnd


class LLMResponse(BaseModel):
    """Response from a one-shot completion."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Generated text content")
    model: str = Field(description="Model that generated the response")
    usage: dict[str, int] | None = Field(
        default=None,
        description="Token usage information"
    )


def split_data_url(url: str) -> tuple[str, str] | None:
    """Split a base64 data URL into (media_type, data).

    Returns:
        The media type and base64 payload, or None for non-data URLs
    """
    if not url.startswith("data:") or ";base64," not in url:
        return None
    header, data = url[len("data:"):].split(";base64,", 1)
    return header or "image/png", data


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


class GenerationParams(BaseModel):
    """Sampling parameters already clamped to a model's bounds."""

    model_config = ConfigDict(frozen=True)

    temperature: float
    top_p: float
    top_k: int | None = Field(default=None, description="Only set for families that accept top-k")
    max_tokens: int

    @classmethod
    def resolve(
        cls,
        family: BaseModelFamily | str,
        max_output_tokens: int,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        max_tokens: int | None = None,
    ) -> "GenerationParams":
        """Apply defaults for absent overrides and clamp to the family's bounds.

        Args:
            family: Provider family of the model
            max_output_tokens: Model's declared output token ceiling
            temperature: User temperature override
            top_p: User top-p override
            top_k: User top-k override
            max_tokens: User max output tokens override

        Returns:
            Clamped generation parameters
        """
        family_key = BaseModelFamily(family).value

        temperature = config.DEFAULT_TEMPERATURE if temperature is None else temperature
        top_p = config.DEFAULT_TOP_P if top_p is None else top_p
        top_k = config.DEFAULT_TOP_K if top_k is None else top_k
        max_tokens = max_output_tokens if max_tokens is None else max_tokens

        resolved_top_k = None
        if family_key in config.TOP_K_FAMILIES:
            resolved_top_k = int(_clamp(top_k, config.TOP_K_BOUNDS))

        return cls(
            temperature=_clamp(temperature, config.TEMPERATURE_BOUNDS[family_key]),
            top_p=_clamp(top_p, config.TOP_P_BOUNDS),
            top_k=resolved_top_k,
            max_tokens=int(_clamp(max_tokens, (1, max_output_tokens))),
        )
