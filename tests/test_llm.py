"""Unit tests for the llm module."""
import pytest
from hypothesis import given
from hypothesis import strategies as st

from chatloom.cancellation import CancellationToken
from chatloom.catalog import ModelCatalog
from chatloom.errors import GenerationCancelled, MissingCredentialError, ProviderError
from chatloom.llm import (
    AnthropicProvider,
    BaseModelFamily,
    GenerationParams,
    LLMMessage,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
    ProviderRegistry,
    StreamEnd,
    StreamingClient,
    TextDelta,
    ToolCall,
    create_llm_provider,
)
from chatloom.llm.models import split_data_url
from chatloom.llm.providers.anthropic import _convert_messages
from chatloom.llm.providers.openai import _messages_to_openai_format
from chatloom.llm.registry import operator_credentials_from_env

from .conftest import FakeProvider, ProviderSpy

TOOL_SPEC = {
    "name": "web_search",
    "description": "Search the web",
    "parameters": {"type": "object", "properties": {"query": {"type": "string"}}},
}


class TestLLMProvider:
    """Tests for the LLMProvider interface."""

    def test_provider_is_abstract(self):
        """Test that LLMProvider cannot be instantiated directly."""
        with pytest.raises(TypeError):
            LLMProvider()  # type: ignore


class TestGenerationParams:
    """Tests for parameter defaults and clamping."""

    def test_defaults_for_absent_overrides(self):
        """Test that absent overrides fall back to documented defaults."""
        params = GenerationParams.resolve(BaseModelFamily.ANTHROPIC, max_output_tokens=8192)

        assert params.temperature == 0.5
        assert params.top_p == 1.0
        assert params.top_k == 5
        assert params.max_tokens == 8192

    def test_openai_has_no_top_k(self):
        """Test that top-k is dropped for families that do not accept it."""
        params = GenerationParams.resolve("openai", max_output_tokens=2048, top_k=40)
        assert params.top_k is None

    def test_anthropic_temperature_capped_at_one(self):
        """Test the per-family temperature ceiling."""
        params = GenerationParams.resolve("anthropic", max_output_tokens=8192, temperature=1.7)
        assert params.temperature == 1.0

    def test_max_tokens_capped_by_model(self):
        """Test that max tokens never exceed the model's output ceiling."""
        params = GenerationParams.resolve("gemini", max_output_tokens=4095, max_tokens=100000)
        assert params.max_tokens == 4095

    @given(
        st.sampled_from(list(BaseModelFamily)),
        st.floats(min_value=-10, max_value=10, allow_nan=False),
        st.floats(min_value=-10, max_value=10, allow_nan=False),
        st.integers(min_value=-1000, max_value=1000),
        st.integers(min_value=-100000, max_value=100000),
    )
    def test_resolved_params_within_bounds(self, family, temperature, top_p, top_k, max_tokens):
        """Property test: every resolved parameter lies inside its bounds."""
        params = GenerationParams.resolve(
            family,
            max_output_tokens=2048,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            max_tokens=max_tokens,
        )

        assert 0.0 <= params.temperature <= 2.0
        assert 0.0 <= params.top_p <= 1.0
        assert 1 <= params.max_tokens <= 2048
        if params.top_k is not None:
            assert 1 <= params.top_k <= 500


class TestSplitDataUrl:
    """Tests for data URL parsing."""

    def test_data_url(self):
        assert split_data_url("data:image/jpeg;base64,AAAA") == ("image/jpeg", "AAAA")

    def test_remote_url(self):
        assert split_data_url("https://example.com/cat.png") is None


class TestProviderRegistry:
    """Tests for credential resolution and client construction."""

    def test_operator_families_ignore_user_keys(self):
        """Test that openai and gemini only resolve from operator credentials."""
        registry = ProviderRegistry(operator_credentials={}, provider_factory=ProviderSpy())

        assert registry.resolve_credential("openai", {"openai": "user-key"}) is None
        assert registry.resolve_credential("anthropic", {"anthropic": "user-key"}) == "user-key"

    def test_operator_credentials_from_env(self):
        """Test reading operator credentials from an environment mapping."""
        creds = operator_credentials_from_env({"OPENAI_API_KEY": "sk-1", "GEMINI_API_KEY": ""})
        assert creds == {"openai": "sk-1"}

    def test_ollama_requires_no_credential(self):
        assert ProviderRegistry.requires_credential("ollama") is False
        assert ProviderRegistry.requires_credential("anthropic") is True

    def test_missing_credential_raises_before_construction(self):
        """Test that no provider is built without a credential."""
        spy = ProviderSpy()
        registry = ProviderRegistry(operator_credentials={}, provider_factory=spy)
        model = ModelCatalog().get_model_by_key("claude-sonnet-4-20250514")
        params = GenerationParams.resolve(model.base_model, model.max_output_tokens)

        with pytest.raises(MissingCredentialError) as exc_info:
            registry.create_streaming_client(model, None, params, CancellationToken())

        assert exc_info.value.family == "anthropic"
        assert spy.calls == []

    def test_create_streaming_client_binds_params_and_token(self):
        """Test that the client carries the given params and token."""
        spy = ProviderSpy()
        registry = ProviderRegistry(operator_credentials={"gemini": "gm"}, provider_factory=spy)
        model = ModelCatalog().get_model_by_key("gemini-pro")
        params = GenerationParams.resolve(model.base_model, model.max_output_tokens)
        token = CancellationToken()

        client = registry.create_streaming_client(model, "gm", params, token)

        assert client.params is params
        assert client.token is token
        assert client.family == BaseModelFamily.GEMINI
        assert spy.calls == [("gemini", {"model": "gemini-pro", "max_retries": 1, "api_key": "gm"})]


class TestStreamingClient:
    """Tests for the streaming client."""

    @pytest.mark.asyncio
    async def test_stream_yields_events(self):
        """Test that provider events pass through unchanged."""
        provider = FakeProvider("openai")
        client = StreamingClient(provider, GenerationParams.resolve("openai", 2048), CancellationToken())

        events = [e async for e in client.stream([LLMMessage(role="user", content="hi")])]

        assert [e.text for e in events if isinstance(e, TextDelta)] == ["Hello", " world"]
        assert isinstance(events[-1], StreamEnd)

    @pytest.mark.asyncio
    async def test_bind_tools_returns_new_client(self):
        """Test that binding tools never mutates the original client."""
        provider = FakeProvider("openai")
        client = StreamingClient(provider, GenerationParams.resolve("openai", 2048), CancellationToken())

        bound = client.bind_tools([TOOL_SPEC])

        assert bound is not client
        assert bound.has_tools is True
        assert client.has_tools is False
        assert bound.token is client.token

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_provider_error(self):
        """Test that provider exceptions are wrapped with the family."""
        provider = FakeProvider("anthropic", turns=[[TextDelta(text="a"), RuntimeError("overloaded")]])
        client = StreamingClient(provider, GenerationParams.resolve("anthropic", 1024), CancellationToken())

        with pytest.raises(ProviderError) as exc_info:
            async for _ in client.stream([LLMMessage(role="user", content="hi")]):
                pass

        assert exc_info.value.family == "anthropic"
        assert isinstance(exc_info.value.original, RuntimeError)

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_stream(self):
        """Test that nothing is yielded once the token has fired."""
        token = CancellationToken()
        token.cancel()
        client = StreamingClient(FakeProvider("openai"), GenerationParams.resolve("openai", 2048), token)

        with pytest.raises(GenerationCancelled):
            async for _ in client.stream([LLMMessage(role="user", content="hi")]):
                pass


class TestFactory:
    """Tests for create_llm_provider."""

    def test_create_openai(self):
        provider = create_llm_provider("openai", api_key="sk-test", model="gpt-4o-mini")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"

    def test_create_claude_alias(self):
        provider = create_llm_provider("claude", api_key="sk-ant")
        assert isinstance(provider, AnthropicProvider)
        assert provider.family == BaseModelFamily.ANTHROPIC

    def test_create_ollama_without_key(self):
        provider = create_llm_provider("ollama", model="llama3", base_url="http://gpu-box:11434/")
        assert isinstance(provider, OllamaProvider)
        assert provider.base_url == "http://gpu-box:11434"

    def test_missing_api_key(self):
        with pytest.raises(TypeError):
            create_llm_provider("openai", model="gpt-4o")

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_llm_provider("deepthought")


class TestMessageConversion:
    """Tests for provider wire format conversion."""

    def test_openai_multimodal_and_tools(self):
        """Test image parts, tool calls and tool results in OpenAI format."""
        call = ToolCall(id_="call-1", tool_name="web_search", arguments={"query": "x"})
        converted = _messages_to_openai_format([
            LLMMessage(role="user", content="look", image_url="https://example.com/a.png"),
            LLMMessage(role="assistant", content="", tool_calls=[call]),
            LLMMessage(role="tool", content="result", tool_call_id="call-1", name="web_search"),
        ])

        assert converted[0]["content"][1] == {"type": "image_url", "image_url": {"url": "https://example.com/a.png"}}
        assert converted[1]["content"] is None
        assert converted[1]["tool_calls"][0]["function"] == {"name": "web_search", "arguments": '{"query": "x"}'}
        assert converted[2] == {"role": "tool", "tool_call_id": "call-1", "content": "result"}

    def test_anthropic_system_and_tool_results(self):
        """Test that system text is lifted and tool results share one user turn."""
        calls = [
            ToolCall(id_="a", tool_name="web_search", arguments={}),
            ToolCall(id_="b", tool_name="memory", arguments={}),
        ]
        system, converted = _convert_messages([
            LLMMessage(role="system", content="Be brief"),
            LLMMessage(role="user", content="hi", image_url="data:image/png;base64,QUJD"),
            LLMMessage(role="assistant", content="", tool_calls=calls),
            LLMMessage(role="tool", content="r1", tool_call_id="a"),
            LLMMessage(role="tool", content="r2", tool_call_id="b"),
        ])

        assert system == "Be brief"
        assert converted[0]["content"][0]["source"] == {"type": "base64", "media_type": "image/png", "data": "QUJD"}
        assert [b["type"] for b in converted[1]["content"]] == ["tool_use", "tool_use"]
        assert len(converted) == 3
        assert [b["tool_use_id"] for b in converted[2]["content"]] == ["a", "b"]

    def test_native_tool_formats(self):
        """Test that each family gets its own tool schema."""
        openai_tools = create_llm_provider("openai", api_key="sk").format_tools([TOOL_SPEC])
        anthropic_tools = create_llm_provider("anthropic", api_key="sk").format_tools([TOOL_SPEC])

        assert openai_tools[0]["type"] == "function"
        assert openai_tools[0]["function"]["name"] == "web_search"
        assert anthropic_tools[0]["name"] == "web_search"
        assert anthropic_tools[0]["input_schema"] == TOOL_SPEC["parameters"]
