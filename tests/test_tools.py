"""Unit tests for the tools module."""
from types import SimpleNamespace

import pytest

from chatloom.llm.models import ToolCall
from chatloom.preferences import InMemoryPreferenceStore, Preferences
from chatloom.tools import (
    BaseTool,
    ImageGenerationTool,
    MemoryTool,
    RuntimeContext,
    ToolResolver,
    WebSearchTool,
)
from chatloom.tools.image_generation import IMAGE_GENERATION_ERROR
from chatloom.tools.memory import MEMORY_ERROR, parse_memory_update

from .conftest import FakeProvider, fake_tool_builders

ALL_CAPABILITIES = ["web_search", "image_generation", "memory"]


def _ctx(input="hello", context=None, image=None):
    return RuntimeContext(
        input=input,
        context=context,
        image=image,
        send_tool_response=lambda record: None,
        preference_store=InMemoryPreferenceStore(),
    )


class TestBaseTool:
    """Tests for the BaseTool interface."""

    def test_tool_is_abstract(self):
        with pytest.raises(TypeError):
            BaseTool()  # type: ignore

    def test_llm_spec(self):
        spec = WebSearchTool().to_llm_spec()

        assert spec["name"] == "web_search"
        assert spec["parameters"]["required"] == ["query"]


class TestToolResolver:
    """Tests for ToolResolver."""

    def test_enabled_and_supported_in_model_order(self):
        """Test that tools follow the model's capability order."""
        resolver = ToolResolver(builders=fake_tool_builders())
        tools = resolver.resolve_tools(["memory", "web_search"], ALL_CAPABILITIES, _ctx())

        assert [t.name for t in tools] == ["web_search", "memory"]

    def test_unsupported_capability_skipped(self):
        resolver = ToolResolver(builders=fake_tool_builders())
        tools = resolver.resolve_tools(["memory", "web_search"], ["web_search"], _ctx())

        assert [t.name for t in tools] == ["web_search"]

    def test_nothing_enabled(self):
        resolver = ToolResolver(builders=fake_tool_builders())
        assert resolver.resolve_tools([], ALL_CAPABILITIES, _ctx()) == []

    @pytest.mark.parametrize("ctx", [
        _ctx(input="draw a cat wearing sunglasses"),
        _ctx(context="please generate an image of this"),
        _ctx(image="https://example.com/photo.jpg"),
    ])
    def test_image_tool_forced(self, ctx):
        """Test that image requests force the image tool even when disabled."""
        resolver = ToolResolver(builders=fake_tool_builders())
        tools = resolver.resolve_tools(["web_search"], ["web_search"], ctx)

        assert [t.name for t in tools] == ["web_search", "image_generation"]

    def test_forced_image_tool_not_duplicated(self):
        """Test that an already enabled image tool is not added twice."""
        resolver = ToolResolver(builders=fake_tool_builders())
        tools = resolver.resolve_tools(["image_generation"], ALL_CAPABILITIES, _ctx(input="draw a dog"))

        assert [t.name for t in tools] == ["image_generation"]

    def test_available_keys(self):
        assert ToolResolver().available_keys == ALL_CAPABILITIES

    def test_default_builders_wire_preferences(self):
        """Test that the default builders pass runtime settings through."""
        ctx = _ctx()
        ctx.web_search_engine = "bing"
        tools = ToolResolver().resolve_tools(["web_search", "memory"], ALL_CAPABILITIES, ctx)

        assert isinstance(tools[0], WebSearchTool)
        assert tools[0]._backend == "bing"
        assert isinstance(tools[1], MemoryTool)


class _FakeImages:
    def __init__(self, url=None, error=None):
        self.url = url
        self.error = error
        self.calls = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(url=self.url)])


class TestImageGenerationTool:
    """Tests for ImageGenerationTool."""

    @pytest.mark.asyncio
    async def test_reports_image_url(self):
        """Test that the generated URL is reported as a renderable image."""
        images = _FakeImages(url="https://img.example.com/1.png")
        reported = []
        tool = ImageGenerationTool(
            api_key=None,
            client=SimpleNamespace(images=images),
            send_tool_response=reported.append,
        )

        result = await tool.execute(ToolCall(tool_name="image_generation", arguments={"imageDescription": "a fox"}))

        assert result.content == "https://img.example.com/1.png"
        assert result.error is False
        assert reported[0].render_args == {"image": "https://img.example.com/1.png"}
        assert images.calls[0]["model"] == "dall-e-3"
        assert images.calls[0]["prompt"] == "a fox"

    @pytest.mark.asyncio
    async def test_api_failure_returns_surrogate(self):
        tool = ImageGenerationTool(api_key=None, client=SimpleNamespace(images=_FakeImages(error=RuntimeError("x"))))

        result = await tool.execute(ToolCall(tool_name="image_generation", arguments={"imageDescription": "a fox"}))

        assert result.error is True
        assert result.content == IMAGE_GENERATION_ERROR

    @pytest.mark.asyncio
    async def test_missing_operator_key(self):
        """Test that a missing OpenAI key is a tool error, not an exception."""
        tool = ImageGenerationTool(api_key=None)

        result = await tool.execute(ToolCall(tool_name="image_generation", arguments={"imageDescription": "a fox"}))

        assert result.error is True

    @pytest.mark.asyncio
    async def test_missing_description(self):
        tool = ImageGenerationTool(api_key="sk-test")
        result = await tool.execute(ToolCall(tool_name="image_generation", arguments={}))
        assert result.error is True


class TestWebSearchTool:
    """Tests for WebSearchTool."""

    @pytest.mark.asyncio
    async def test_formats_and_reports_results(self, monkeypatch):
        tool = WebSearchTool()
        reported = []
        tool.set_response_callback(reported.append)
        results = [{"title": "Python", "url": "https://python.org", "snippet": "The language"}]
        monkeypatch.setattr(tool, "_search", lambda query: results)

        result = await tool.execute(ToolCall(tool_name="web_search", arguments={"query": "python"}))

        assert result.content.startswith("Found 1 results:")
        assert "https://python.org" in result.content
        assert reported[0].render_args == {"results": results}

    @pytest.mark.asyncio
    async def test_search_failure(self, monkeypatch):
        tool = WebSearchTool()

        def fail(query):
            raise RuntimeError("rate limited")

        monkeypatch.setattr(tool, "_search", fail)
        result = await tool.execute(ToolCall(tool_name="web_search", arguments={"query": "python"}))

        assert result.error is True
        assert "rate limited" in result.content

    @pytest.mark.asyncio
    async def test_empty_query(self):
        result = await WebSearchTool().execute(ToolCall(tool_name="web_search", arguments={}))
        assert result.error is True


class TestMemoryTool:
    """Tests for MemoryTool."""

    def test_parse_fenced_json(self):
        update = parse_memory_update('```json\n{"memories": ["Likes tea"]}\n```')
        assert update.memories == ["Likes tea"]

    @pytest.mark.asyncio
    async def test_appends_condensed_memories(self):
        """Test that condensed notes are appended without duplicates."""
        store = InMemoryPreferenceStore(Preferences(memories=["Lives in Oslo"]))
        llm = FakeProvider("openai", completion='{"memories": ["lives in oslo", "Likes tea"]}')
        reported = []
        tool = MemoryTool(llm=llm, preference_store=store, send_tool_response=reported.append)

        result = await tool.execute(ToolCall(
            tool_name="memory",
            arguments={"memory": "I like tea", "question": "What should I drink?"},
        ))

        assert result.content == "What should I drink?"
        assert (await store.get()).memories == ["Lives in Oslo", "Likes tea"]
        assert reported[0].response == {"memories": ["Lives in Oslo", "Likes tea"]}
        assert llm.completions[0]["temperature"] == 0.0
        assert "I like tea" in llm.completions[0]["messages"][0].content

    @pytest.mark.asyncio
    async def test_unusable_answer(self):
        store = InMemoryPreferenceStore()
        tool = MemoryTool(llm=FakeProvider("openai", completion="not json"), preference_store=store)

        result = await tool.execute(ToolCall(tool_name="memory", arguments={"memory": "x", "question": "y"}))

        assert result.error is True
        assert result.content == MEMORY_ERROR
        assert (await store.get()).memories == []

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        """Test that a failing condensing call yields the same surrogate as a bad answer."""
        class FailingProvider(FakeProvider):
            async def chat_completion(self, messages, model=None, temperature=0.7, max_tokens=None, **kwargs):
                raise ConnectionError("provider down")

        store = InMemoryPreferenceStore(Preferences(memories=["Lives in Oslo"]))
        reported = []
        tool = MemoryTool(llm=FailingProvider("openai"), preference_store=store, send_tool_response=reported.append)

        result = await tool.execute(ToolCall(tool_name="memory", arguments={"memory": "x", "question": "y"}))

        assert result.error is True
        assert result.content == MEMORY_ERROR
        assert reported == []
        assert (await store.get()).memories == ["Lives in Oslo"]

    @pytest.mark.asyncio
    async def test_without_llm(self):
        tool = MemoryTool(llm=None, preference_store=InMemoryPreferenceStore())
        result = await tool.execute(ToolCall(tool_name="memory", arguments={"memory": "x", "question": "y"}))
        assert result.error is True

    @pytest.mark.asyncio
    async def test_aclose_closes_llm(self):
        llm = FakeProvider("openai")
        await MemoryTool(llm=llm, preference_store=InMemoryPreferenceStore()).aclose()
        assert llm.closed is True
