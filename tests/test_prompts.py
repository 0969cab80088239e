"""Unit tests for prompt assembly."""
import pytest
from hypothesis import given
from hypothesis import strategies as st

from chatloom.catalog import Assistant
from chatloom.llm.models import LLMMessage
from chatloom.prompts import PromptAssembler, load_prompt, mentions_image_request
from chatloom.prompts.assembler import HISTORY_SENTENCE


@pytest.fixture
def assistant():
    return Assistant(key="helper", name="Helper", system_prompt="You are helpful.", base_model="gpt-4o")


class TestMentionsImageRequest:
    """Tests for image request detection."""

    @pytest.mark.parametrize("text", [
        "draw a cat wearing sunglasses",
        "Please generate an image of a lighthouse",
        "create a picture for my blog",
        "I want a picture of the sea",
        "Make an image with two dogs",
    ])
    def test_detects_image_requests(self, text):
        assert mentions_image_request(text) is True

    @pytest.mark.parametrize("text", [
        None,
        "",
        "What is the capital of France?",
        "The drawer is stuck",
        "imagine a better world",
    ])
    def test_ignores_other_text(self, text):
        assert mentions_image_request(text) is False


class TestPromptAssembler:
    """Tests for PromptAssembler."""

    def test_system_prompt_layout(self, assistant):
        """Test the system prompt with memories and no history."""
        prompt = PromptAssembler().assemble(assistant, memory_notes=["Likes tea", "Lives in Oslo"])

        assert prompt.system == "You are helpful.\nThings to remember:\nLikes tea\nLives in Oslo\n"

    def test_history_sentence_only_with_history(self, assistant):
        assembler = PromptAssembler()

        assert HISTORY_SENTENCE in assembler.assemble(assistant, has_history=True).system
        assert HISTORY_SENTENCE not in assembler.assemble(assistant, has_history=False).system

    def test_image_instruction_from_context(self, assistant):
        """Test that an image request in the context adds the tool instruction."""
        prompt = PromptAssembler().assemble(assistant, context="Draw the diagram described below")

        assert prompt.system.endswith("\n" + load_prompt("image_instruction").strip())

    def test_no_image_instruction_without_context(self, assistant):
        """Test that the instruction is absent when there is no context."""
        prompt = PromptAssembler().assemble(assistant, context=None)
        assert "image_generation" not in prompt.system

    def test_context_appended_to_user_turn(self, assistant):
        prompt = PromptAssembler().assemble(assistant, context="Paris is in France.")
        messages = prompt.format("Where is Paris?")

        assert messages[-1].content == (
            'Where is Paris?\n\nAnswer user\'s question based on this context: """Paris is in France."""'
        )

    def test_format_order(self, assistant):
        """Test system, history, user turn and scratchpad ordering."""
        prompt = PromptAssembler().assemble(assistant, image="https://example.com/cat.png", has_history=True)
        history = [LLMMessage(role="user", content="q"), LLMMessage(role="assistant", content="a")]
        scratchpad = [LLMMessage(role="tool", content="r", tool_call_id="c1")]

        messages = prompt.format("now", history, scratchpad)

        assert [m.role for m in messages] == ["system", "user", "assistant", "user", "tool"]
        assert messages[3].content == "now\n\n"
        assert messages[3].image_url == "https://example.com/cat.png"

    @given(st.text(), st.booleans(), st.lists(st.text(max_size=20), max_size=5))
    def test_assembly_is_deterministic(self, context, has_history, notes):
        """Property test: identical inputs give identical prompts."""
        assistant = Assistant(key="a", name="A", base_model="gpt-4o")
        assembler = PromptAssembler()

        first = assembler.assemble(assistant, context=context, has_history=has_history, memory_notes=notes)
        second = assembler.assemble(assistant, context=context, has_history=has_history, memory_notes=notes)

        assert first == second


class TestLoadPrompt:
    """Tests for the prompt file loader."""

    def test_load_packaged_prompt(self):
        assert "{new_memory}" in load_prompt("memory_update")

    def test_missing_prompt(self):
        with pytest.raises(FileNotFoundError):
            load_prompt("does_not_exist")
