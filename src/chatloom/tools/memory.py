"""Memory tool: remembers facts about the user across conversations."""

import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from .. import config
from ..llm.base import LLMProvider
from ..llm.models import LLMMessage, ToolCall
from ..preferences import PreferenceStore
from ..prompts import load_prompt
from ..sessions.models import ToolInvocationRecord
from .base import BaseTool, SendToolResponse, ToolCallResult

logger = logging.getLogger(__name__)

MEMORY_ERROR = "Error updating memory."

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class MemoryUpdate(BaseModel):
    """Structured output of the condensing call."""

    memories: list[str] = Field(description="list of key information points")


def parse_memory_update(text: str) -> MemoryUpdate:
    """Parse the model's JSON answer, tolerating a markdown code fence.

    Raises:
        ValidationError: If the text is not a valid memory update
    """
    return MemoryUpdate.model_validate_json(_CODE_FENCE.sub("", text.strip()))


class MemoryTool(BaseTool):
    """Condenses a new fact with the existing memories and stores the result."""

    def __init__(
        self,
        llm: LLMProvider | None,
        preference_store: PreferenceStore,
        model: str = config.MEMORY_MODEL,
        send_tool_response: SendToolResponse | None = None,
    ):
        """Initialize the memory tool.

        Args:
            llm: Provider used for the condensing call (operator OpenAI key)
            preference_store: Store receiving the new notes
            model: Model for the condensing call
            send_tool_response: Callback reporting results into the live message
        """
        super().__init__(send_tool_response)
        self._llm = llm
        self._preference_store = preference_store
        self._model = model

    @property
    def name(self) -> str:
        return "memory"

    @property
    def description(self) -> str:
        return (
            "Useful when the user provides key information or preferences to personalize "
            "future interactions. The user may specifically ask to remember something."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "memory": {
                    "type": "string",
                    "description": (
                        "key information about the user, any user preference to personalize "
                        "future interactions. It must be short and concise"
                    )
                },
                "question": {
                    "type": "string",
                    "description": "question user asked"
                }
            },
            "required": ["memory", "question"]
        }

    async def execute(self, tool_call: ToolCall) -> ToolCallResult:
        """Merge the new fact into memory and hand the question back to the model."""
        memory = tool_call.arguments.get("memory", "")
        question = tool_call.arguments.get("question", "")
        if not memory:
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content="Error: memory parameter is required",
                error=True
            )

        try:
            if self._llm is None:
                raise RuntimeError("Server misconfiguration: OpenAI API key not set.")

            preferences = await self._preference_store.get()
            prompt = load_prompt("memory_update").format(
                new_memory=memory,
                existing_memory="\n".join(preferences.memories),
            )
            response = await self._llm.chat_completion(
                [LLMMessage(role="user", content=prompt)],
                model=self._model,
                temperature=0.0,
            )
            update = parse_memory_update(response.content)
            memories = await self._preference_store.append_memories(update.memories)
        except Exception as e:
            # Unparseable answers (ValidationError) land here too
            logger.warning("Memory update failed: %s", e)
            return ToolCallResult(tool_call_id=tool_call.id_, content=MEMORY_ERROR, error=True)

        self.report(ToolInvocationRecord(
            tool_name=self.name,
            tool_args={"memory": memory},
            response={"memories": memories},
        ))
        return ToolCallResult(tool_call_id=tool_call.id_, content=question or memory)

    async def aclose(self) -> None:
        if self._llm is not None:
            await self._llm.close()
