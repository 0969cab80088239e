"""Pytest configuration and shared fixtures."""
import asyncio
import os
from typing import Any

import pytest

from chatloom.agent import GenerationOrchestrator, GenerationRequest
from chatloom.catalog import STATIC_MODELS, ModelCatalog, ollama_model
from chatloom.llm.base import LLMProvider
from chatloom.llm.models import (
    BaseModelFamily,
    LLMResponse,
    StreamEnd,
    TextDelta,
)
from chatloom.llm.registry import ProviderRegistry
from chatloom.notifications import NotificationChannel
from chatloom.preferences import InMemoryPreferenceStore
from chatloom.sessions import ToolInvocationRecord, create_session_store
from chatloom.tools import BaseTool, ToolCallResult, ToolResolver

# Script marker: block the stream until the generation is cancelled
HANG = object()


class FakeProvider(LLMProvider):
    """Provider that replays a scripted turn per stream() call.

    A script item is an event to yield, an exception to raise, or HANG.
    """

    def __init__(
        self,
        family: str,
        model: str = "fake-model",
        turns: list[list[Any]] | None = None,
        completion: str = "",
        hung: asyncio.Event | None = None,
        **config: Any,
    ):
        self._family = BaseModelFamily(family)
        self._model = model
        self.turns = turns or [[TextDelta(text="Hello"), TextDelta(text=" world"), StreamEnd()]]
        self.completion = completion
        self.config = config
        self.hung = hung or asyncio.Event()
        self.requests: list[dict[str, Any]] = []
        self.completions: list[dict[str, Any]] = []
        self.closed = False

    @property
    def family(self) -> BaseModelFamily:
        return self._family

    @property
    def model(self) -> str:
        return self._model

    async def stream(self, messages, params, tools=None):
        turn = self.turns[min(len(self.requests), len(self.turns) - 1)]
        self.requests.append({"messages": messages, "params": params, "tools": tools})
        for item in turn:
            if item is HANG:
                self.hung.set()
                await asyncio.Event().wait()
            elif isinstance(item, Exception):
                raise item
            else:
                yield item

    def format_tools(self, tool_specs):
        return [dict(spec) for spec in tool_specs]

    async def chat_completion(self, messages, model=None, temperature=0.7, max_tokens=None, **kwargs):
        self.completions.append({"messages": messages, "model": model, "temperature": temperature})
        return LLMResponse(content=self.completion, model=model or self._model)

    async def close(self) -> None:
        self.closed = True


class ProviderSpy:
    """Provider factory that records every construction.

    Each new provider gets the next script from ``scripts``; the last
    script is reused once they run out.
    """

    def __init__(self, scripts: list[list[list[Any]]] | None = None):
        self.scripts = scripts or [[[TextDelta(text="Hello"), TextDelta(text=" world"), StreamEnd()]]]
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.providers: list[FakeProvider] = []
        self.hung = asyncio.Event()

    def __call__(self, family: str, **config: Any) -> FakeProvider:
        self.calls.append((family, config))
        turns = self.scripts[min(len(self.providers), len(self.scripts) - 1)]
        provider = FakeProvider(family, turns=turns, hung=self.hung, **config)
        self.providers.append(provider)
        return provider


class FakeTool(BaseTool):
    """Tool returning a fixed answer and optionally reporting a record."""

    def __init__(
        self,
        name: str,
        content: str = "tool output",
        render_args: dict[str, Any] | None = None,
        display_name: str | None = None,
        send_tool_response=None,
    ):
        super().__init__(send_tool_response)
        self._name = name
        self._content = content
        self._render_args = render_args
        self._display_name = display_name
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str:
        return self._display_name or super().display_name

    @property
    def description(self) -> str:
        return f"Fake {self._name} tool"

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, tool_call) -> ToolCallResult:
        self.calls.append(tool_call.arguments)
        if self._render_args is not None:
            self.report(ToolInvocationRecord(
                tool_name=self.name,
                tool_args=tool_call.arguments,
                render_args=self._render_args,
                response=self._content,
            ))
        return ToolCallResult(tool_call_id=tool_call.id_, content=self._content)

    async def aclose(self) -> None:
        self.closed = True


IMAGE_URL = "https://images.example.com/cat.png"


def fake_tool_builders(built: list[FakeTool] | None = None):
    """Tool builders producing FakeTools; every built tool is appended to ``built``."""
    built = built if built is not None else []

    def builder(name: str, **kwargs: Any):
        def build(ctx):
            tool = FakeTool(name, send_tool_response=ctx.send_tool_response, **kwargs)
            built.append(tool)
            return tool
        return build

    return {
        "web_search": builder("web_search", content="search results"),
        "image_generation": builder(
            "image_generation",
            content=IMAGE_URL,
            render_args={"image": IMAGE_URL},
            display_name="Image Generation",
        ),
        "memory": builder("memory", content="remembered"),
    }


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "openai": os.getenv("OPENAI_API_KEY"),
        "anthropic": os.getenv("ANTHROPIC_API_KEY"),
        "gemini": os.getenv("GEMINI_API_KEY"),
    }


@pytest.fixture
def session_store():
    return create_session_store("memory")


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore()


@pytest.fixture
def provider_spy():
    return ProviderSpy()


@pytest.fixture
def registry(provider_spy):
    return ProviderRegistry(
        operator_credentials={"openai": "sk-test", "gemini": "gm-test"},
        provider_factory=provider_spy,
    )


@pytest.fixture
def built_tools():
    return []


@pytest.fixture
def tool_resolver(built_tools):
    return ToolResolver(builders=fake_tool_builders(built_tools))


@pytest.fixture
def catalog():
    return ModelCatalog(models=[*STATIC_MODELS, ollama_model("llama3")])


@pytest.fixture
def notifications():
    return NotificationChannel()


@pytest.fixture
def orchestrator(session_store, preference_store, registry, tool_resolver, catalog, notifications):
    return GenerationOrchestrator(
        session_store=session_store,
        preference_store=preference_store,
        registry=registry,
        tool_resolver=tool_resolver,
        catalog=catalog,
        notifications=notifications,
    )


@pytest.fixture
async def session(session_store):
    return await session_store.create_session()


@pytest.fixture
def make_request(catalog):
    """Build a GenerationRequest for an assistant key."""
    def _make(session_id: str, input: str = "Hello there", assistant_key: str = "gpt-4o-mini", **kwargs):
        assistant, _ = catalog.get_assistant_by_key(assistant_key)
        return GenerationRequest(session_id=session_id, input=input, assistant=assistant, **kwargs)
    return _make
