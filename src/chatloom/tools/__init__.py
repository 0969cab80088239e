"""Invocable tools and the resolver that picks them per request."""

from .base import BaseTool, SendToolResponse, ToolCallResult
from .image_generation import ImageGenerationTool
from .memory import MemoryTool
from .resolver import RuntimeContext, ToolResolver
from .web_search import WebSearchTool

__all__ = [
    "BaseTool",
    "SendToolResponse",
    "ToolCallResult",
    "ImageGenerationTool",
    "MemoryTool",
    "WebSearchTool",
    "RuntimeContext",
    "ToolResolver",
]
