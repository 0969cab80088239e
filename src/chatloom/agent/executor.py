"""Execution modes: a plain chain and a tool-calling agent.

Both stream through the same StreamingClient (and so the same
cancellation token) and report through the same GenerationCallbacks.
"""

import logging

from .. import config
from ..errors import GenerationCancelled
from ..llm.client import StreamingClient
from ..llm.models import LLMMessage, StreamEnd, TextDelta, ToolCall, ToolCallRequest
from ..prompts.assembler import StructuredPrompt
from ..tools.base import BaseTool, ToolCallResult
from .data_structures import ExecutionResult, GenerationCallbacks, UsageSummary

logger = logging.getLogger(__name__)

MAX_STEPS_MESSAGE = "Agent stopped due to max iterations."


class ChainExecutor:
    """Runs the prompt directly against the provider, one turn, no tools."""

    def __init__(self, client: StreamingClient, prompt: StructuredPrompt):
        self._client = client
        self._prompt = prompt

    async def invoke(
        self,
        input: str,
        chat_history: list[LLMMessage],
        callbacks: GenerationCallbacks,
    ) -> ExecutionResult:
        usage = UsageSummary()
        chunks: list[str] = []

        async for event in self._client.stream(self._prompt.format(input, chat_history)):
            if isinstance(event, TextDelta):
                chunks.append(event.text)
                callbacks.on_token(event.text)
            elif isinstance(event, StreamEnd):
                usage.add_usage(event.usage)
            elif isinstance(event, ToolCallRequest):
                logger.debug("Ignoring tool call %s without bound tools", event.tool_call.tool_name)

        return ExecutionResult(output="".join(chunks), usage=usage)


class ToolCallingAgentExecutor:
    """Lets the model call tools before answering.

    Hidden design decisions:
    - Processing loop structure (one provider turn per step)
    - Scratchpad format (assistant tool-call turn followed by tool results)
    - Tool failures turned into textual results for the model
    """

    def __init__(
        self,
        client: StreamingClient,
        prompt: StructuredPrompt,
        tools: list[BaseTool],
        max_steps: int = config.MAX_AGENT_STEPS,
    ):
        """Initialize the agent executor.

        Args:
            client: Client with the tools already bound
            prompt: Assembled prompt
            tools: Tools the model may call
            max_steps: Maximum provider turns before giving up
        """
        self._client = client
        self._prompt = prompt
        self._tools_registry = {t.name: t for t in tools}
        self._max_steps = max_steps

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools_registry.values())

    async def invoke(
        self,
        input: str,
        chat_history: list[LLMMessage],
        callbacks: GenerationCallbacks,
    ) -> ExecutionResult:
        usage = UsageSummary()
        scratchpad: list[LLMMessage] = []
        streamed: list[str] = []

        for step in range(1, self._max_steps + 1):
            turn_text: list[str] = []
            tool_calls: list[ToolCall] = []

            messages = self._prompt.format(input, chat_history, scratchpad)
            async for event in self._client.stream(messages):
                if isinstance(event, TextDelta):
                    turn_text.append(event.text)
                    streamed.append(event.text)
                    callbacks.on_token(event.text)
                elif isinstance(event, ToolCallRequest):
                    tool_calls.append(event.tool_call)
                elif isinstance(event, StreamEnd):
                    usage.add_usage(event.usage)

            if not tool_calls:
                return ExecutionResult(output="".join(turn_text), steps=step, usage=usage)

            logger.info(
                "Step %d: model requested %s",
                step,
                ", ".join(tc.tool_name for tc in tool_calls),
            )
            scratchpad.append(LLMMessage(
                role="assistant",
                content="".join(turn_text),
                tool_calls=tool_calls,
            ))
            for tool_call in tool_calls:
                result = await self._run_tool(tool_call, callbacks)
                scratchpad.append(LLMMessage(
                    role="tool",
                    content=result.content,
                    tool_call_id=tool_call.id_,
                    name=tool_call.tool_name,
                ))

        logger.warning("Maximum steps (%d) reached", self._max_steps)
        return ExecutionResult(
            output="".join(streamed) or MAX_STEPS_MESSAGE,
            steps=self._max_steps,
            usage=usage,
            status="max_steps_reached",
        )

    async def _run_tool(self, tool_call: ToolCall, callbacks: GenerationCallbacks) -> ToolCallResult:
        tool = self._tools_registry.get(tool_call.tool_name)
        if tool is None:
            logger.warning("Model called unknown tool %s", tool_call.tool_name)
            return ToolCallResult(
                tool_call_id=tool_call.id_,
                content=f"Error: unknown tool '{tool_call.tool_name}'",
                error=True,
            )

        callbacks.on_tool_start(tool_call)
        try:
            result = await self._client.token.guard(tool.execute(tool_call))
        except GenerationCancelled:
            raise
        except Exception as e:
            logger.exception("Tool %s failed", tool_call.tool_name)
            result = ToolCallResult(
                tool_call_id=tool_call.id_,
                content=f"Error executing {tool_call.tool_name}: {e}",
                error=True,
            )
        callbacks.on_tool_end(tool_call, result)
        return result
