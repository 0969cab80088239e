from .base import LLMProvider
from .client import StreamingClient
from .factory import create_llm_provider
from .models import (
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
from .providers import AnthropicProvider, GeminiProvider, OllamaProvider, OpenAIProvider
from .registry import ProviderRegistry

__all__ = [
    "LLMProvider",
    "StreamingClient",
    "create_llm_provider",
    "ProviderRegistry",
    "BaseModelFamily",
    "GenerationParams",
    "LLMMessage",
    "LLMResponse",
    "StreamEnd",
    "StreamEvent",
    "TextDelta",
    "ToolCall",
    "ToolCallRequest",
    "AnthropicProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
]
