"""Shared fixtures: a scripted model client and tool registries.

The fake client runs through the real ``BaseAsyncLLM.stream_turn`` so reasoning
markers, parameter merging and error wrapping behave as in production.
"""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from copilot_agent.adapters import AnthropicRequestAdapter
from copilot_agent.client import BaseAsyncLLM
from copilot_agent.context import ExecutionContext
from copilot_agent.providers import Provider
from copilot_agent.settings import AgentSettings
from copilot_agent.tools.registry import ToolRegistry
from copilot_agent.types.chat import FinalMessage, TextBlock, Usage
from copilot_agent.types.events import TurnCompleted
from copilot_agent.types.request import AgentRequest
from copilot_agent.types.tool import ToolCallRequest, ToolSpec


def text_reply(text: str, *, thinking: str = "", usage: Usage = Usage(10, 5)) -> list[Any]:
    """Script for a turn that answers without tools."""
    script: list[Any] = []
    if thinking:
        script.append(("thinking", thinking))
    script.append(("text", text))
    script.append(
        FinalMessage(content=(TextBlock(text),), stop_reason="end_turn", usage=usage)
    )
    return script


def tool_reply(*calls: ToolCallRequest, text: str = "", usage: Usage = Usage(10, 5)) -> list[Any]:
    """Script for a turn that requests *calls*."""
    script: list[Any] = []
    content: list[Any] = []
    if text:
        script.append(("text", text))
        content.append(TextBlock(text))
    content.extend(calls)
    script.append(FinalMessage(content=tuple(content), stop_reason="tool_use", usage=usage))
    return script


class FakeLLM(BaseAsyncLLM):
    """Replays one script per turn; the last script repeats once the list runs out."""

    provider = Provider.ANTHROPIC

    def __init__(self, scripts: Sequence[list[Any]], model: str = "fake-model") -> None:
        super().__init__(model=model)
        self.scripts = list(scripts)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def adapter(self) -> AnthropicRequestAdapter:
        return AnthropicRequestAdapter()

    async def _stream_impl(self, conversation, tools, system_prompt, params, tracker):
        self.calls.append(
            {
                "turns": conversation.turns,
                "tools": list(tools),
                "system_prompt": system_prompt,
                "params": params,
            }
        )
        script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
        for item in script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, FinalMessage):
                yield TurnCompleted(item)
            elif item[0] == "thinking":
                for event in tracker.reasoning(item[1]):
                    yield event
            else:
                for event in tracker.content(item[1]):
                    yield event

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(max_iterations=10, max_tools=100)


@pytest.fixture
def registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register("get_weather", lambda tool_input, ctx: {"temp": 21, "city": tool_input.get("city")})
    return registry


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(user_id="user-1", workflow_id="wf-1")


@pytest.fixture
def make_request():
    def factory(message: str = "Hello", **overrides: Any) -> AgentRequest:
        data: dict[str, Any] = {
            "message": message,
            "workflowId": "wf-1",
            "userId": "user-1",
        }
        data.update(overrides)
        return AgentRequest.model_validate(data)

    return factory


def spec(name: str, **schema: Any) -> ToolSpec:
    return ToolSpec(name=name, description=f"{name} tool", input_schema=schema or None)


async def collect(events) -> list[Any]:
    return [event async for event in events]


