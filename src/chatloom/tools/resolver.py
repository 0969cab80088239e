"""Decides which tools a generation may invoke."""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .. import config
from ..llm.factory import create_llm_provider
from ..preferences import PreferenceStore
from ..prompts import mentions_image_request
from .base import BaseTool, SendToolResponse
from .image_generation import ImageGenerationTool
from .memory import MemoryTool
from .web_search import WebSearchTool

logger = logging.getLogger(__name__)

IMAGE_GENERATION_KEY = "image_generation"


@dataclass
class RuntimeContext:
    """Per-request inputs the tools are built from."""

    input: str
    send_tool_response: SendToolResponse
    preference_store: PreferenceStore
    context: str | None = None
    image: str | None = None
    openai_api_key: str | None = None
    web_search_engine: str = config.DEFAULT_WEB_SEARCH_ENGINE


ToolBuilder = Callable[[RuntimeContext], BaseTool]


def _build_web_search(ctx: RuntimeContext) -> BaseTool:
    return WebSearchTool(backend=ctx.web_search_engine, send_tool_response=ctx.send_tool_response)


def _build_image_generation(ctx: RuntimeContext) -> BaseTool:
    return ImageGenerationTool(api_key=ctx.openai_api_key, send_tool_response=ctx.send_tool_response)


def _build_memory(ctx: RuntimeContext) -> BaseTool:
    llm = None
    if ctx.openai_api_key:
        llm = create_llm_provider("openai", api_key=ctx.openai_api_key, model=config.MEMORY_MODEL)
    return MemoryTool(
        llm=llm,
        preference_store=ctx.preference_store,
        send_tool_response=ctx.send_tool_response,
    )


DEFAULT_TOOL_BUILDERS: dict[str, ToolBuilder] = {
    "web_search": _build_web_search,
    IMAGE_GENERATION_KEY: _build_image_generation,
    "memory": _build_memory,
}


class ToolResolver:
    """Builds the ordered tool list for one request.

    A tool is included when its capability key is enabled in preferences
    and supported by the model. The image generation tool is also forced in
    when the input or context asks for an image, or an image is attached.
    """

    def __init__(self, builders: dict[str, ToolBuilder] | None = None):
        self._builders = dict(DEFAULT_TOOL_BUILDERS if builders is None else builders)

    @property
    def available_keys(self) -> list[str]:
        return list(self._builders)

    @staticmethod
    def wants_image_generation(ctx: RuntimeContext) -> bool:
        return bool(ctx.image) or mentions_image_request(ctx.input) or mentions_image_request(ctx.context)

    def resolve_tools(
        self,
        enabled_keys: list[str],
        model_capabilities: list[str],
        ctx: RuntimeContext,
    ) -> list[BaseTool]:
        """Resolve the tools for a request.

        Args:
            enabled_keys: Capability keys enabled in preferences
            model_capabilities: Capability keys the model supports
            ctx: Runtime context handed to every tool

        Returns:
            Tools in model capability order, forced image tool last
        """
        enabled = set(enabled_keys)
        tools: list[BaseTool] = []
        for key in model_capabilities:
            if key not in enabled:
                continue
            builder = self._builders.get(key)
            if builder is None:
                logger.warning("No tool registered for capability %s", key)
                continue
            tools.append(builder(ctx))

        if self.wants_image_generation(ctx) and IMAGE_GENERATION_KEY in self._builders:
            present = {t.name for t in tools} | {t.display_name for t in tools}
            image_tool = self._builders[IMAGE_GENERATION_KEY](ctx)
            if image_tool.name in present or image_tool.display_name in present:
                logger.debug("Image generation tool already resolved")
            else:
                logger.info("Forcing image generation tool for this request")
                tools.append(image_tool)

        return tools
