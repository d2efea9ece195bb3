"""Tests for the conversation loop controller."""

import asyncio

import pytest

from copilot_agent.agent import MAX_ITERATIONS_MESSAGE, CopilotAgent, handle_request
from copilot_agent.errors import (
    DEFAULT_DISPLAY_MESSAGE,
    MAX_ITERATIONS_DISPLAY_MESSAGE,
    MissingCredentialError,
    UnsupportedProviderError,
)
from copilot_agent.providers import Provider
from copilot_agent.tools.dispatcher import ToolDispatcher
from copilot_agent.tools.registry import ToolRegistry
from copilot_agent.types.chat import Role, Usage
from copilot_agent.types.events import (
    ContentDeltaEvent,
    DoneEvent,
    ErrorEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ReasoningStartEvent,
    StartEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from copilot_agent.types.tool import ToolCallRequest

from conftest import FakeLLM, collect, text_reply, tool_reply


def weather_call(call_id="t1", city="Oslo"):
    return ToolCallRequest(id=call_id, name="get_weather", arguments={"city": city})


def make_agent(llm, registry, settings, **kwargs):
    return CopilotAgent(llm, ToolDispatcher(registry), settings=settings, **kwargs)


def assert_single_terminal_done(events):
    assert isinstance(events[-1], DoneEvent)
    assert sum(isinstance(e, DoneEvent) for e in events) == 1


def assert_reasoning_balanced(events):
    depth = 0
    for event in events:
        if isinstance(event, ReasoningStartEvent):
            assert depth == 0
            depth += 1
        elif isinstance(event, ReasoningEndEvent):
            assert depth == 1
            depth -= 1
        elif isinstance(event, ReasoningDeltaEvent):
            assert depth == 1
        else:
            assert depth == 0
    assert depth == 0


class TestSingleTurn:
    @pytest.mark.asyncio
    async def test_plain_answer(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("Hello!")])
        events = await collect(make_agent(llm, registry, settings).run(make_request("Hi")))

        assert [type(e) for e in events] == [StartEvent, ContentDeltaEvent, DoneEvent]
        start, content, done = events
        assert start.model == "fake-model"
        assert start.provider == "anthropic"
        assert content.text == "Hello!"
        assert done.stop_reason == "end_turn"
        assert done.usage == Usage(10, 5)
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_reasoning_closed_before_content(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("Answer", thinking="Considering")])
        events = await collect(make_agent(llm, registry, settings).run(make_request()))

        assert [type(e) for e in events] == [
            StartEvent,
            ReasoningStartEvent,
            ReasoningDeltaEvent,
            ReasoningEndEvent,
            ContentDeltaEvent,
            DoneEvent,
        ]
        assert_reasoning_balanced(events)

    @pytest.mark.asyncio
    async def test_start_event_carries_system_prompt(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("ok")])
        request = make_request(userName="Dana", context=[{"type": "workflow", "content": "3 blocks"}])

        events = await collect(make_agent(llm, registry, settings).run(request))

        prompt = events[0].system_prompt
        assert "The user's name is Dana." in prompt
        assert "### workflow\n3 blocks" in prompt
        assert llm.calls[0]["system_prompt"] == prompt

    @pytest.mark.asyncio
    async def test_cached_prompt_reused(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("ok")])
        request = make_request(systemPromptCache="cached prompt", userName="Dana")

        events = await collect(make_agent(llm, registry, settings).run(request))

        assert events[0].system_prompt == "cached prompt"
        assert llm.calls[0]["system_prompt"] == "cached prompt"

    @pytest.mark.asyncio
    async def test_history_precedes_new_message(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("ok")])
        request = make_request(
            "And tomorrow?",
            conversationHistory=[
                {"role": "user", "content": "Weather today?"},
                {"role": "assistant", "content": "Sunny."},
            ],
        )

        await collect(make_agent(llm, registry, settings).run(request))

        turns = llm.calls[0]["turns"]
        assert [t.role for t in turns] == [Role.USER, Role.ASSISTANT, Role.USER]
        assert turns[-1].text == "And tomorrow?"

    @pytest.mark.asyncio
    async def test_tools_deduplicated_and_params_forwarded(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("ok")])
        request = make_request(
            tools=[{"name": "search"}, {"name": "get_blocks_metadata"}],
            baseTools=[{"name": "get_blocks_metadata", "description": "base"}],
        )

        await collect(make_agent(llm, registry, settings).run(request))

        tools = llm.calls[0]["tools"]
        assert sorted(t.name for t in tools) == ["get_blocks_metadata", "search"]
        assert next(t for t in tools if t.name == "get_blocks_metadata").description == "base"
        assert llm.calls[0]["params"]["max_tokens"] == settings.max_tokens
        assert llm.calls[0]["params"]["thinking_budget"] == settings.thinking_budget


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_tool_round_trip(self, registry, settings, make_request):
        llm = FakeLLM([tool_reply(weather_call()), text_reply("It is 21 degrees.")])
        events = await collect(make_agent(llm, registry, settings).run(make_request("Weather?")))

        assert [type(e) for e in events] == [
            StartEvent,
            ToolCallEvent,
            ToolResultEvent,
            ContentDeltaEvent,
            DoneEvent,
        ]
        call, result = events[1], events[2]
        assert (call.id, call.name, call.arguments) == ("t1", "get_weather", {"city": "Oslo"})
        assert result.id == "t1"
        assert result.success
        assert result.result == {"temp": 21, "city": "Oslo"}

        second_turns = llm.calls[1]["turns"]
        assert [t.role for t in second_turns] == [Role.USER, Role.ASSISTANT, Role.TOOL_RESULT]
        assert second_turns[1].tool_calls == [weather_call()]
        assert second_turns[2].content[0].id == "t1"

    @pytest.mark.asyncio
    async def test_usage_summed_across_turns(self, registry, settings, make_request):
        llm = FakeLLM(
            [
                tool_reply(weather_call(), usage=Usage(100, 20)),
                text_reply("done", usage=Usage(150, 30)),
            ]
        )
        events = await collect(make_agent(llm, registry, settings).run(make_request()))
        assert events[-1].usage == Usage(250, 50)

    @pytest.mark.asyncio
    async def test_failed_tool_does_not_stop_siblings(self, registry, settings, make_request):
        def broken(tool_input, ctx):
            raise RuntimeError("quota exceeded")

        registry.register("broken", broken)
        llm = FakeLLM(
            [
                tool_reply(
                    ToolCallRequest(id="t1", name="broken", arguments={}),
                    ToolCallRequest(id="t2", name="nonexistent", arguments={}),
                    weather_call("t3"),
                ),
                text_reply("Partially done."),
            ]
        )
        events = await collect(make_agent(llm, registry, settings).run(make_request()))

        results = [e for e in events if isinstance(e, ToolResultEvent)]
        assert [(r.id, r.success) for r in results] == [("t1", False), ("t2", False), ("t3", True)]
        assert results[0].error == "quota exceeded"
        assert results[1].error == "Unknown tool: nonexistent"
        assert events[-1].stop_reason == "end_turn"

        fed_back = llm.calls[1]["turns"][-1].content
        assert [r.id for r in fed_back] == ["t1", "t2", "t3"]
        assert fed_back[0].to_model_text() == "Error: quota exceeded"

    @pytest.mark.asyncio
    async def test_tools_run_sequentially_in_request_order(self, settings, make_request):
        order = []
        registry = ToolRegistry()
        registry.register("first", lambda tool_input, ctx: order.append("first"))
        registry.register("second", lambda tool_input, ctx: order.append("second"))
        llm = FakeLLM(
            [
                tool_reply(
                    ToolCallRequest(id="a", name="first"),
                    ToolCallRequest(id="b", name="second"),
                ),
                text_reply("ok"),
            ]
        )

        events = await collect(make_agent(llm, registry, settings).run(make_request()))

        assert order == ["first", "second"]
        kinds = [type(e) for e in events if isinstance(e, (ToolCallEvent, ToolResultEvent))]
        assert kinds == [ToolCallEvent, ToolResultEvent, ToolCallEvent, ToolResultEvent]

    @pytest.mark.asyncio
    async def test_text_before_tool_call_is_streamed(self, settings, make_request):
        edits = []
        registry = ToolRegistry()
        registry.register("edit_workflow", lambda tool_input, ctx: edits.append(tool_input) or "ok")
        llm = FakeLLM(
            [
                tool_reply(
                    ToolCallRequest(
                        id="e1",
                        name="edit_workflow",
                        arguments={"operations": [{"type": "add", "block": "gmail_send"}]},
                    ),
                    text="Adding an email block.",
                ),
                text_reply("Your workflow now sends an email."),
            ]
        )

        events = await collect(
            make_agent(llm, registry, settings).run(make_request("Add an email step"))
        )

        assert [type(e) for e in events] == [
            StartEvent,
            ContentDeltaEvent,
            ToolCallEvent,
            ToolResultEvent,
            ContentDeltaEvent,
            DoneEvent,
        ]
        assert len(edits) == 1
        assert edits[0]["workflowId"] == "wf-1"
        assert edits[0]["userId"] == "user-1"
        assert events[-1].stop_reason == "end_turn"


class TestTermination:
    @pytest.mark.asyncio
    async def test_iteration_cap(self, registry, settings, make_request):
        llm = FakeLLM([tool_reply(weather_call())])
        agent = make_agent(llm, registry, settings.copy(max_iterations=3))

        events = await collect(agent.run(make_request()))

        assert len(llm.calls) == 3
        assert sum(isinstance(e, ToolCallEvent) for e in events) == 3
        error, done = events[-2:]
        assert error == ErrorEvent(MAX_ITERATIONS_MESSAGE, MAX_ITERATIONS_DISPLAY_MESSAGE)
        assert done.stop_reason is None
        assert done.usage == Usage(30, 15)
        assert_single_terminal_done(events)

    @pytest.mark.asyncio
    async def test_provider_failure_mid_stream(self, registry, settings, make_request):
        llm = FakeLLM([[("thinking", "Let me"), ConnectionError("reset by peer")]])
        events = await collect(make_agent(llm, registry, settings).run(make_request()))

        assert [type(e) for e in events] == [
            StartEvent,
            ReasoningStartEvent,
            ReasoningDeltaEvent,
            ReasoningEndEvent,
            ErrorEvent,
            DoneEvent,
        ]
        assert "Connection problem" in events[-2].message
        assert events[-2].display_message == DEFAULT_DISPLAY_MESSAGE
        assert_reasoning_balanced(events)

    @pytest.mark.asyncio
    async def test_provider_failure_after_tools_keeps_usage(self, registry, settings, make_request):
        llm = FakeLLM([tool_reply(weather_call()), [TimeoutError("slow")]])
        events = await collect(make_agent(llm, registry, settings).run(make_request()))

        assert isinstance(events[-2], ErrorEvent)
        assert events[-1].usage == Usage(10, 5)
        assert_single_terminal_done(events)

    @pytest.mark.asyncio
    async def test_unexpected_error_still_ends_with_done(self, registry, settings, make_request):
        def failing_prompt(**kwargs):
            raise KeyError("template")

        llm = FakeLLM([text_reply("never")])
        agent = make_agent(llm, registry, settings, prompt_builder=failing_prompt)

        events = await collect(agent.run(make_request()))

        assert [type(e) for e in events] == [ErrorEvent, DoneEvent]
        assert events[0].display_message == DEFAULT_DISPLAY_MESSAGE
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_closing_stops_further_work(self, settings, make_request):
        executed = []
        registry = ToolRegistry()
        registry.register("get_weather", lambda tool_input, ctx: executed.append(tool_input))
        llm = FakeLLM([tool_reply(weather_call())])

        events = make_agent(llm, registry, settings).run(make_request())
        async for event in events:
            if isinstance(event, ToolCallEvent):
                break
        await events.aclose()

        assert len(llm.calls) == 1
        assert executed == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self, registry, settings, make_request):
        agent = make_agent(FakeLLM([text_reply("same")]), registry, settings)

        first, second = await asyncio.gather(
            collect(agent.run(make_request("one"))),
            collect(agent.run(make_request("two"))),
        )

        for events in (first, second):
            assert [type(e) for e in events] == [StartEvent, ContentDeltaEvent, DoneEvent]
        texts = sorted(call["turns"][-1].text for call in agent.llm.calls)
        assert texts == ["one", "two"]


class TestHandleRequest:
    def factory(self, llm):
        calls = []

        def llm_factory(provider, model, **kwargs):
            calls.append((provider, model))
            return llm

        return llm_factory, calls

    def test_unsupported_provider_raises_before_streaming(self, registry, settings, make_request):
        llm_factory, calls = self.factory(FakeLLM([text_reply("x")]))
        with pytest.raises(UnsupportedProviderError):
            handle_request(
                make_request(provider="mistral"), registry, settings=settings, llm_factory=llm_factory
            )
        assert calls == []

    def test_missing_credential_propagates(self, registry, settings, make_request):
        def llm_factory(provider, model, **kwargs):
            raise MissingCredentialError("ANTHROPIC_API_KEY not configured")

        with pytest.raises(MissingCredentialError):
            handle_request(make_request(), registry, settings=settings, llm_factory=llm_factory)

    @pytest.mark.asyncio
    async def test_model_mapping_and_close(self, registry, settings, make_request):
        llm = FakeLLM([text_reply("hi")])
        llm_factory, calls = self.factory(llm)
        request = make_request(provider={"provider": "openai", "model": "gpt-4"})

        events = await collect(
            handle_request(request, registry, settings=settings, llm_factory=llm_factory)
        )

        assert calls == [(Provider.OPENAI, "gpt-4-turbo")]
        assert events[0].provider == "openai"
        assert isinstance(events[-1], DoneEvent)
        assert llm.closed

    @pytest.mark.asyncio
    async def test_default_provider_and_model(self, registry, settings, make_request):
        llm_factory, calls = self.factory(FakeLLM([text_reply("hi")]))
        await collect(handle_request(make_request(), registry, settings=settings, llm_factory=llm_factory))
        assert calls == [(Provider.ANTHROPIC, "claude-sonnet-4-5-20250929")]
