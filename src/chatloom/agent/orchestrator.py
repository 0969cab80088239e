"""Generation orchestrator: the live-message state machine.

pending -> streaming -> finished | errored | cancelled | missing-credential

Every request ends in exactly one terminal state and exactly one durable
write. Errors are resolved into that state plus, for provider failures,
a single notification; none of them escape run_model().
"""

import asyncio
import logging
import re
from uuid import uuid4

from .. import config
from ..cancellation import CancellationController, CancellationToken
from ..catalog import ModelCatalog, ModelInfo
from ..errors import GenerationCancelled, MissingCredentialError, ProviderError, UnknownModelError
from ..llm.client import StreamingClient
from ..llm.models import BaseModelFamily, GenerationParams, ToolCall
from ..llm.registry import ProviderRegistry
from ..notifications import NotificationChannel
from ..preferences import PreferenceStore, Preferences
from ..prompts.assembler import PromptAssembler
from ..sessions.base import SessionStore
from ..sessions.models import ChatMessage, ToolInvocationRecord
from ..sessions.synchronizer import SessionSynchronizer
from ..tools.base import BaseTool, ToolCallResult
from ..tools.resolver import RuntimeContext, ToolResolver
from .data_structures import GenerationCallbacks, GenerationRequest, GenerationState
from .executor import ChainExecutor, ToolCallingAgentExecutor
from .history import history_to_messages, select_history_pairs

logger = logging.getLogger(__name__)

_EXTRA_SPACES = re.compile(r"[ \t]+")


def remove_extra_spaces(text: str | None) -> str | None:
    """Collapse runs of spaces and trim; None and blank text become None."""
    if text is None:
        return None
    collapsed = "\n".join(_EXTRA_SPACES.sub(" ", line).strip() for line in text.strip().splitlines())
    return collapsed or None


class LiveGeneration(GenerationCallbacks):
    """Mutable state of one in-flight generation.

    Holds the latest live snapshot and tool records and republishes them on
    every event. Events arriving after the token fired are dropped.
    """

    def __init__(
        self,
        live: ChatMessage,
        token: CancellationToken,
        synchronizer: SessionSynchronizer,
    ):
        self.live = live
        self.token = token
        self.text = ""
        self.tools: list[ToolInvocationRecord] = []
        self.state = GenerationState.PENDING
        self._synchronizer = synchronizer
        self._final: ChatMessage | None = None

    @property
    def finalized(self) -> bool:
        return self._final is not None

    def transition(self, state: GenerationState) -> None:
        logger.info("Message %s: %s -> %s", self.live.id, self.state.value, state.value)
        self.state = state

    def publish(self) -> None:
        self._synchronizer.publish(self.live, self.tools)

    def merge_tool(self, record: ToolInvocationRecord) -> None:
        """Replace the record with the same tool name, or append it."""
        if self.token.cancelled or self.finalized:
            return
        for index, existing in enumerate(self.tools):
            if existing.tool_name == record.tool_name:
                self.tools[index] = record
                break
        else:
            self.tools.append(record)
        self.publish()

    def send_tool_response(self, record: ToolInvocationRecord) -> None:
        self.merge_tool(record.model_copy(update={"tool_loading": False}))

    # GenerationCallbacks

    def on_token(self, text: str) -> None:
        if self.token.cancelled or self.finalized:
            return
        self.text += text
        self.live = self.live.model_copy(update={
            "raw_ai": self.text,
            "is_loading": True,
            "stop": False,
            "stop_reason": None,
        })
        self.publish()

    def on_tool_start(self, tool_call: ToolCall) -> None:
        self.merge_tool(ToolInvocationRecord(
            tool_name=tool_call.tool_name,
            tool_args=tool_call.arguments,
            tool_loading=True,
        ))

    def on_tool_end(self, tool_call: ToolCall, result: ToolCallResult) -> None:
        # Tools that reported through send_tool_response already settled their record
        for existing in self.tools:
            if existing.tool_name == tool_call.tool_name and not existing.tool_loading:
                return
        self.merge_tool(ToolInvocationRecord(
            tool_name=tool_call.tool_name,
            tool_args=tool_call.arguments,
            response=result.content,
            tool_loading=False,
        ))

    async def finalize(self, state: GenerationState, raw_ai: str | None = None) -> ChatMessage:
        """Enter a terminal state and commit the message, once."""
        if self._final is not None:
            return self._final

        self.transition(state)
        text = self.text if raw_ai is None else raw_ai
        self._final = self.live.model_copy(update={
            "raw_ai": text or None,
            "is_loading": False,
            "stop": True,
            "stop_reason": state.stop_reason,
            "tools": list(self.tools),
        })
        try:
            committed = await self._synchronizer.commit(self._final.session_id, self._final)
        except Exception:
            logger.exception("Failed to persist message %s", self._final.id)
        else:
            if committed is not None:
                self._final = committed
        return self._final


class GenerationOrchestrator:
    """Turns a chat request into a streamed, possibly tool-augmented response.

    All collaborators are injected; nothing is read from ambient state.
    """

    def __init__(
        self,
        session_store: SessionStore,
        preference_store: PreferenceStore,
        registry: ProviderRegistry,
        tool_resolver: ToolResolver,
        catalog: ModelCatalog,
        notifications: NotificationChannel | None = None,
        synchronizer: SessionSynchronizer | None = None,
        controller: CancellationController | None = None,
        assembler: PromptAssembler | None = None,
        max_agent_steps: int = config.MAX_AGENT_STEPS,
    ):
        self._preference_store = preference_store
        self._registry = registry
        self._tool_resolver = tool_resolver
        self._catalog = catalog
        self._notifications = notifications or NotificationChannel()
        self._synchronizer = synchronizer or SessionSynchronizer(session_store)
        self._controller = controller or CancellationController()
        self._assembler = assembler or PromptAssembler()
        self._max_agent_steps = max_agent_steps

    @property
    def synchronizer(self) -> SessionSynchronizer:
        return self._synchronizer

    @property
    def notifications(self) -> NotificationChannel:
        return self._notifications

    def is_generating(self, session_id: str) -> bool:
        return self._controller.is_active(session_id)

    def stop_generation(self, session_id: str) -> bool:
        """Cancel the running generation of a session.

        Returns:
            True if a running generation was cancelled
        """
        stopped = self._controller.cancel(session_id)
        if stopped:
            logger.info("Stop requested for session %s", session_id)
        return stopped

    async def handle_run_model(
        self,
        session_id: str,
        input: str,
        assistant_key: str | None = None,
        context: str | None = None,
        image: str | None = None,
        message_id: str | None = None,
    ) -> ChatMessage | None:
        """Validate a user turn, then run it.

        Blank input, unknown assistants and missing credentials are rejected
        here without touching the session.

        Returns:
            The terminal message, or None if the request was rejected
        """
        input = remove_extra_spaces(input)
        if not input:
            return None

        preferences = await self._preference_store.get()
        key = assistant_key or preferences.default_assistant
        resolved = self._catalog.get_assistant_by_key(key, preferences.system_prompt)
        if resolved is None:
            self._notifications.notify("Error", f"Assistant not found: {key}", "destructive")
            return None
        assistant, model = resolved

        family = model.base_model
        if (
            self._registry.requires_credential(family)
            and self._registry.resolve_credential(family, preferences.api_keys) is None
        ):
            self._notifications.notify(
                "API Key Missing",
                str(MissingCredentialError(family.value)),
                "destructive",
            )
            return None

        return await self.run_model(GenerationRequest(
            session_id=session_id,
            message_id=message_id,
            input=input,
            context=remove_extra_spaces(context),
            image=image,
            assistant=assistant,
        ))

    async def run_model(self, request: GenerationRequest) -> ChatMessage:
        """Generate a response for a request.

        Any generation still running for the session is cancelled first and
        awaited before this one starts.

        Returns:
            The terminal message

        Raises:
            ValueError: If the input is empty
        """
        if not request.input:
            raise ValueError("input must not be empty")

        message_id = request.message_id or str(uuid4())
        token, previous_done = self._controller.begin(request.session_id)
        try:
            if previous_done is not None:
                await previous_done.wait()
            return await self._generate(request, message_id, token)
        finally:
            self._controller.finish(request.session_id, token)
            # LiveGeneration drops its own events once finalized
            self._synchronizer.end_message(message_id)
            if not self._controller.is_active(request.session_id):
                self._synchronizer.unload(request.session_id)

    async def _generate(
        self,
        request: GenerationRequest,
        message_id: str,
        token: CancellationToken,
    ) -> ChatMessage:
        session = await self._synchronizer.load(request.session_id)
        preferences = await self._preference_store.get()

        existing = session.get_message(message_id) if session is not None else None
        live = ChatMessage(
            id=message_id,
            session_id=request.session_id,
            raw_human=request.input,
            is_loading=True,
            assistant_key=request.assistant.key,
            model_key=request.assistant.base_model,
        )
        if existing is not None:
            live = live.model_copy(update={"created_at": existing.created_at})

        self._synchronizer.begin_message(message_id)
        generation = LiveGeneration(live, token, self._synchronizer)

        if session is None:
            self._notifications.notify("Error", f"Session not found: {request.session_id}", "destructive")
            generation.transition(GenerationState.ERRORED)
            return generation.live.model_copy(update={
                "is_loading": False,
                "stop": True,
                "stop_reason": GenerationState.ERRORED.stop_reason,
            })

        generation.publish()

        if token.cancelled:
            return await generation.finalize(GenerationState.CANCELLED)

        model = self._catalog.get_model_by_key(request.assistant.base_model)
        if model is None:
            self._notifications.notify("Error", str(UnknownModelError(request.assistant.base_model)), "destructive")
            return await generation.finalize(GenerationState.ERRORED)

        credential = self._registry.resolve_credential(model.base_model, preferences.api_keys)
        if credential is None and self._registry.requires_credential(model.base_model):
            logger.info("No %s credential; not contacting the provider", model.base_model.value)
            return await generation.finalize(GenerationState.MISSING_CREDENTIAL)

        pairs = select_history_pairs(session.messages, preferences.message_limit, message_id)
        prompt = self._assembler.assemble(
            request.assistant,
            context=request.context,
            image=request.image,
            has_history=bool(pairs),
            memory_notes=preferences.memories,
        )
        tools = self._resolve_tools(request, model, preferences, generation)

        client: StreamingClient | None = None
        try:
            client = self._registry.create_streaming_client(
                model,
                credential,
                GenerationParams.resolve(
                    model.base_model,
                    model.max_output_tokens,
                    temperature=preferences.temperature,
                    top_p=preferences.top_p,
                    top_k=preferences.top_k,
                    max_tokens=preferences.max_tokens,
                ),
                token,
                base_url=preferences.ollama_base_url,
            )
            if tools:
                executor = ToolCallingAgentExecutor(
                    self._registry.bind_tools(client, tools, token),
                    prompt,
                    tools,
                    max_steps=self._max_agent_steps,
                )
            else:
                executor = ChainExecutor(client, prompt)

            generation.transition(GenerationState.STREAMING)
            result = await executor.invoke(request.input, history_to_messages(pairs), generation)
            token.raise_if_cancelled()
            return await generation.finalize(GenerationState.FINISHED, result.output or generation.text)

        except MissingCredentialError:
            return await generation.finalize(GenerationState.MISSING_CREDENTIAL)
        except GenerationCancelled:
            return await generation.finalize(GenerationState.CANCELLED)
        except asyncio.CancelledError:
            token.cancel()
            await generation.finalize(GenerationState.CANCELLED)
            raise
        except Exception as e:
            if token.cancelled:
                return await generation.finalize(GenerationState.CANCELLED)
            if isinstance(e, ProviderError):
                logger.error("Generation %s failed: %s", message_id, e)
            else:
                logger.exception("Generation %s failed", message_id)
            self._notifications.notify("Error", "Something went wrong", "destructive")
            return await generation.finalize(GenerationState.ERRORED)
        finally:
            await self._close(client, tools)

    def _resolve_tools(
        self,
        request: GenerationRequest,
        model: ModelInfo,
        preferences: Preferences,
        generation: LiveGeneration,
    ) -> list[BaseTool]:
        ctx = RuntimeContext(
            input=request.input,
            context=request.context,
            image=request.image,
            send_tool_response=generation.send_tool_response,
            preference_store=self._preference_store,
            openai_api_key=self._registry.resolve_credential(BaseModelFamily.OPENAI),
            web_search_engine=preferences.default_web_search_engine,
        )
        tools = self._tool_resolver.resolve_tools(preferences.default_plugins, model.plugins, ctx)
        if tools:
            logger.info("Tools for message %s: %s", generation.live.id, ", ".join(t.name for t in tools))
        return tools

    @staticmethod
    async def _close(client: StreamingClient | None, tools: list[BaseTool]) -> None:
        for tool in tools:
            try:
                await tool.aclose()
            except Exception as e:
                logger.debug("Closing tool %s failed: %s", tool.name, e)
        if client is not None:
            try:
                await client.aclose()
            except Exception as e:
                logger.debug("Closing %s client failed: %s", client.family.value, e)
