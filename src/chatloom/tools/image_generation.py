"""Image generation tool backed by the OpenAI Images API."""

import logging
from typing import Any

from openai import AsyncOpenAI

from .. import config
from ..llm.models import ToolCall
from ..sessions.models import ToolInvocationRecord
from .base import BaseTool, SendToolResponse, ToolCallResult

logger = logging.getLogger(__name__)

IMAGE_GENERATION_ERROR = "Error performing image generation."


class ImageGenerationTool(BaseTool):
    """Generates one image from a description.

    Always runs against the operator's OpenAI credential, whatever the
    chat model's family is.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = config.IMAGE_GENERATION_MODEL,
        size: str = "1024x1024",
        client: AsyncOpenAI | None = None,
        send_tool_response: SendToolResponse | None = None,
    ):
        """Initialize the image generation tool.

        Args:
            api_key: Operator OpenAI key
            model: Images API model
            size: Requested image size
            client: Pre-built client (defaults to AsyncOpenAI(api_key))
            send_tool_response: Callback reporting results into the live message
        """
        super().__init__(send_tool_response)
        self._api_key = api_key
        self._model = model
        self._size = size
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "image_generation"

    @property
    def display_name(self) -> str:
        return "Image Generation"

    @property
    def description(self) -> str:
        return "Useful for when you are asked to generate an image based on a description."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "imageDescription": {
                    "type": "string",
                    "description": "Detailed description of the image to generate"
                }
            },
            "required": ["imageDescription"]
        }

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise RuntimeError("Server misconfiguration: OpenAI API key not set.")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Generate the image and report its URL."""
        description = tool_call.arguments.get("imageDescription", "")
        if not description:
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content="Error: imageDescription parameter is required",
                error=True
            )

        try:
            logger.info("Generating image: %.80s", description)
            response = await self._get_client().images.generate(
                model=self._model,
                prompt=description,
                n=1,
                size=self._size,
            )
            image_url = response.data[0].url if response.data else None
            if not image_url:
                raise RuntimeError("Invalid response from the Images API")
        except Exception as e:
            logger.warning("Image generation failed: %s", e)
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content=IMAGE_GENERATION_ERROR,
                error=True
            )

        self.report(ToolInvocationRecord(
            tool_name=self.name,
            tool_args={"imageDescription": description},
            render_args={"image": image_url},
            response=image_url,
        ))
        return ToolCallResult(tool_call_id=tool_call.id_, content=image_url)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
