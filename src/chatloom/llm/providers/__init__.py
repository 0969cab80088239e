from .anthropic import AnthropicProvider
from .gemini import GeminiProvider
from .ollama import OllamaProvider, fetch_ollama_models
from .openai import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "fetch_ollama_models",
]
