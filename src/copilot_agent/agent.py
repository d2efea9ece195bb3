"""
Conversation Loop Controller.

``CopilotAgent.run`` drives one request: it streams a model turn, relays
reasoning and content as they arrive, executes requested tools one at a
time, feeds their results back and repeats until the model answers without
tools or the iteration cap is hit. Every run ends with exactly one ``done``
event, preceded by one ``error`` event when it did not finish normally.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import StrEnum
from typing import AsyncGenerator, Callable, Optional

from copilot_agent.client import BaseAsyncLLM, create_llm
from copilot_agent.context import ExecutionContext
from copilot_agent.errors import (
    DEFAULT_DISPLAY_MESSAGE,
    MAX_ITERATIONS_DISPLAY_MESSAGE,
    CopilotAgentError,
    ProviderError,
)
from copilot_agent.prompts import PromptBuilder, build_system_prompt
from copilot_agent.providers import Provider, map_model_name, resolve_provider
from copilot_agent.settings import AgentSettings
from copilot_agent.tools.dispatcher import ToolDispatcher
from copilot_agent.tools.registry import ToolRegistry
from copilot_agent.toolset import prepare_tools
from copilot_agent.types.chat import Conversation, ConversationTurn, FinalMessage, Usage
from copilot_agent.types.events import (
    LIVE_EVENTS,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    StreamEvent,
    ToolCallEvent,
    ToolResultEvent,
    ToolUseReady,
    TurnCompleted,
    TurnFailed,
)
from copilot_agent.types.request import AgentRequest
from copilot_agent.types.tool import ToolCallResult

__all__ = ["CopilotAgent", "LoopPhase", "LoopState", "LLMFactory", "handle_request"]

MAX_ITERATIONS_MESSAGE = "Max tool execution iterations reached"


class LoopPhase(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    INSPECTING = "inspecting"
    TOOL_EXECUTING = "tool_executing"
    DONE = "done"
    ERROR = "error"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


@dataclass(slots=True)
class LoopState:
    """Mutable loop bookkeeping for one request."""

    max_iterations: int
    iteration: int = 0
    continue_loop: bool = True
    phase: LoopPhase = LoopPhase.IDLE
    usage: Usage = field(default_factory=Usage)

    @property
    def exhausted(self) -> bool:
        return self.iteration >= self.max_iterations

    def begin_iteration(self) -> None:
        self.iteration += 1
        self.phase = LoopPhase.STREAMING

    def finish(self, phase: LoopPhase) -> None:
        self.phase = phase
        self.continue_loop = False


class CopilotAgent:
    """
    Runs the tool-calling loop for requests against one model client.

    The agent keeps no per-request state on ``self``; concurrent ``run``
    calls are independent.
    """

    def __init__(
        self,
        llm: BaseAsyncLLM,
        dispatcher: ToolDispatcher,
        *,
        provider: Provider | str | None = None,
        settings: Optional[AgentSettings] = None,
        prompt_builder: PromptBuilder = build_system_prompt,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.llm = llm
        self.dispatcher = dispatcher
        self.provider = str(provider or getattr(llm, "provider", "") or "")
        self.settings = settings or AgentSettings()
        self.prompt_builder = prompt_builder
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__

    def _log(self, message: str, level: int = logging.INFO, **extra) -> None:
        self.logger.log(level, f"[{self.name}] {message}", extra=extra or None)

    async def run(self, request: AgentRequest) -> AsyncGenerator[StreamEvent, None]:
        """Stream the events answering *request*."""
        state = LoopState(max_iterations=self.settings.max_iterations)
        try:
            async with aclosing(self._run(request, state)) as events:
                async for event in events:
                    yield event
        except Exception as exc:
            state.finish(LoopPhase.ERROR)
            self.logger.exception(f"[{self.name}] Unexpected error in conversation loop")
            display = (
                exc.display_message
                if isinstance(exc, CopilotAgentError)
                else DEFAULT_DISPLAY_MESSAGE
            )
            yield ErrorEvent(str(exc) or exc.__class__.__name__, display)
            yield DoneEvent(usage=state.usage)

    async def _run(
        self, request: AgentRequest, state: LoopState
    ) -> AsyncGenerator[StreamEvent, None]:
        context = ExecutionContext.for_request(request)
        system_prompt = self.prompt_builder(
            user_name=request.user_name,
            contexts=request.context,
            cached_prompt=request.system_prompt_cache,
        )
        tools = prepare_tools(
            request.base_tools, request.tools, self.settings.max_tools, self.logger
        )

        conversation = Conversation.from_history(request.conversation_history)
        self._log(
            "Starting conversation",
            history_turns=len(conversation),
            tool_count=len(tools),
            system_prompt_cached=bool(request.system_prompt_cache),
        )
        yield StartEvent(model=self.llm.model, provider=self.provider, system_prompt=system_prompt)
        conversation.append(ConversationTurn.user(request.message))

        while not state.exhausted:
            state.begin_iteration()
            self._log(f"Iteration {state.iteration}/{state.max_iterations}", logging.DEBUG)

            message: Optional[FinalMessage] = None
            failure: Optional[ProviderError] = None
            async with aclosing(
                self.llm.stream_turn(
                    conversation,
                    tools,
                    system_prompt=system_prompt,
                    params=self.settings.turn_params(),
                )
            ) as turn:
                async for event in turn:
                    if isinstance(event, LIVE_EVENTS):
                        yield event
                    elif isinstance(event, ToolUseReady):
                        self._log(f"Tool requested: {event.request.name}", logging.DEBUG)
                    elif isinstance(event, TurnCompleted):
                        message = event.message
                    elif isinstance(event, TurnFailed):
                        failure = event.error

            if message is None:
                state.finish(LoopPhase.ERROR)
                error = failure or ProviderError(
                    "Provider stream ended without a final message",
                    RuntimeError("missing final message"),
                )
                yield ErrorEvent(str(error), error.display_message)
                yield DoneEvent(usage=state.usage)
                return

            state.phase = LoopPhase.INSPECTING
            state.usage = state.usage + message.usage
            calls = message.tool_calls
            if not calls:
                state.finish(LoopPhase.DONE)
                self._log(
                    f"Conversation finished after {state.iteration} iteration(s)",
                    stop_reason=message.stop_reason,
                )
                yield DoneEvent(stop_reason=message.stop_reason, usage=state.usage)
                return

            conversation.append(message.to_turn())
            state.phase = LoopPhase.TOOL_EXECUTING
            results: list[ToolCallResult] = []
            for call in calls:
                yield ToolCallEvent(id=call.id, name=call.name, arguments=call.arguments)
                # Shielded: a disconnect lets the running call finish; its result is dropped.
                result = await asyncio.shield(
                    self.dispatcher.execute(call.name, call.arguments, context, call_id=call.id)
                )
                result = result.with_id(call.id, call.name)
                results.append(result)
                yield ToolResultEvent(
                    id=call.id,
                    name=call.name,
                    success=result.success,
                    result=result.result,
                    error=result.error,
                )
            conversation.append(ConversationTurn.tool_results(results))

        state.finish(LoopPhase.MAX_ITERATIONS_REACHED)
        self._log(
            f"Max iterations reached ({state.max_iterations}), stopping",
            logging.WARNING,
        )
        yield ErrorEvent(MAX_ITERATIONS_MESSAGE, MAX_ITERATIONS_DISPLAY_MESSAGE)
        yield DoneEvent(usage=state.usage)


LLMFactory = Callable[..., BaseAsyncLLM]


def handle_request(
    request: AgentRequest,
    registry: ToolRegistry,
    *,
    settings: Optional[AgentSettings] = None,
    llm_factory: LLMFactory = create_llm,
    prompt_builder: PromptBuilder = build_system_prompt,
    logger: Optional[logging.Logger] = None,
) -> AsyncGenerator[StreamEvent, None]:
    """
    Validate *request*, build the model client and return the event stream.

    Raises:
        ConfigurationError: unsupported provider or missing API key. Raised
            here, before any event is produced.
    """
    settings = settings or AgentSettings.from_env()
    provider = resolve_provider(request.provider_name)
    model = map_model_name(request.model_name, provider)
    llm = llm_factory(provider, model, settings=settings, logger=logger)
    agent = CopilotAgent(
        llm,
        ToolDispatcher(registry, logger=logger),
        provider=provider,
        settings=settings,
        prompt_builder=prompt_builder,
        logger=logger,
    )
    return _run_and_close(agent, request)


async def _run_and_close(
    agent: CopilotAgent, request: AgentRequest
) -> AsyncGenerator[StreamEvent, None]:
    try:
        async with aclosing(agent.run(request)) as events:
            async for event in events:
                yield event
    finally:
        await agent.llm.aclose()
