"""Builds the structured prompt for one generation.

Assembly is a pure function of its inputs: no I/O beyond the cached
prompt files.
"""

import re
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from ..llm.models import LLMMessage
from . import load_prompt

if TYPE_CHECKING:
    from ..catalog import Assistant

HISTORY_SENTENCE = "You can also refer to previous conversations."

# "generate image", "create an image", "draw ...", "picture of ..."
_IMAGE_REQUEST = re.compile(
    r"\b(?:generate|create|make)\s+(?:an?\s+)?(?:image|picture)\b"
    r"|\bdraw\b"
    r"|\b(?:picture|image)\s+of\b",
    re.IGNORECASE,
)


def mentions_image_request(text: str | None) -> bool:
    """Check whether text asks for an image to be generated."""
    return bool(text) and _IMAGE_REQUEST.search(text) is not None


class StructuredPrompt(BaseModel):
    """An assembled prompt with placeholders for history and scratchpad.

    Rendered by format() as: system, chat history, user turn, scratchpad.
    """

    model_config = ConfigDict(frozen=True)

    system: str
    context: str | None = None
    image: str | None = None

    def user_content(self, input: str) -> str:
        content = f"{input}\n\n"
        if self.context:
            content += f'Answer user\'s question based on this context: """{self.context}"""'
        return content

    def format(
        self,
        input: str,
        chat_history: list[LLMMessage] | None = None,
        scratchpad: list[LLMMessage] | None = None,
    ) -> list[LLMMessage]:
        """Fill the placeholders.

        Args:
            input: Raw user input
            chat_history: Prior turns, oldest first
            scratchpad: Tool-call turns of the current generation

        Returns:
            Messages ready for a provider
        """
        messages = [LLMMessage(role="system", content=self.system)]
        messages.extend(chat_history or [])
        messages.append(LLMMessage(
            role="user",
            content=self.user_content(input),
            image_url=self.image,
        ))
        messages.extend(scratchpad or [])
        return messages


class PromptAssembler:
    """Assembles prompts from assistant configuration and the current turn."""

    def assemble(
        self,
        assistant: "Assistant",
        context: str | None = None,
        image: str | None = None,
        has_history: bool = False,
        memory_notes: list[str] | None = None,
    ) -> StructuredPrompt:
        """Build the structured prompt.

        Args:
            assistant: Persona providing the base system prompt
            context: Extra context the answer must be based on
            image: Image reference attached to the user turn
            has_history: Whether prior turns will be supplied
            memory_notes: Facts remembered about the user

        Returns:
            StructuredPrompt with history and scratchpad placeholders
        """
        memories = "\n".join(memory_notes or [])
        system = f"{assistant.system_prompt}\nThings to remember:\n{memories}\n"
        if has_history:
            system += HISTORY_SENTENCE
        if mentions_image_request(context):
            system += "\n" + load_prompt("image_instruction").strip()

        return StructuredPrompt(system=system, context=context or None, image=image or None)
