"""Shared streaming utilities for LLM providers."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from copilot_agent.types.chat import ContentBlock, FinalMessage, TextBlock, Usage
from copilot_agent.types.events import (
    ContentDeltaEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ReasoningStartEvent,
    TurnEvent,
)
from copilot_agent.types.tool import ToolCallRequest

__all__ = [
    "ReasoningTracker",
    "OpenAIStreamAccumulator",
    "OPENAI_STOP_REASONS",
]

_logger = logging.getLogger(__name__)

# Chat Completions finish reasons, mapped onto the Messages API vocabulary.
OPENAI_STOP_REASONS: Dict[str, str] = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "content_filter": "refusal",
}


class ReasoningTracker:
    """
    Turns a flat run of reasoning and content deltas into balanced markers.

    A phase starts on the first reasoning delta after anything else (or at
    the beginning of the stream) and ends on the first non-reasoning delta
    that follows. ``close()`` ends a phase still open when the stream stops.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started_at: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._started_at is not None

    def reasoning(self, text: str) -> List[TurnEvent]:
        events: List[TurnEvent] = []
        if not self.active:
            self._started_at = self._clock()
            events.append(ReasoningStartEvent())
        if text:
            events.append(ReasoningDeltaEvent(text))
        return events

    def content(self, text: str) -> List[TurnEvent]:
        events = self.close()
        if text:
            events.append(ContentDeltaEvent(text))
        return events

    def close(self) -> List[TurnEvent]:
        if self._started_at is None:
            return []
        duration_ms = int((self._clock() - self._started_at) * 1000)
        self._started_at = None
        return [ReasoningEndEvent(duration_ms)]


def _parse_arguments(raw_args: Any, name: str) -> Dict[str, Any]:
    if isinstance(raw_args, dict):
        return raw_args
    if not isinstance(raw_args, str) or not raw_args.strip():
        return {}
    try:
        parsed = json.loads(raw_args)
    except json.JSONDecodeError:
        _logger.warning("Malformed tool arguments, using empty input", extra={"tool": name})
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIStreamAccumulator:
    """
    Folds ChatCompletionChunks into a single FinalMessage.

    ``add`` returns the (reasoning, content) text carried by one chunk so the
    caller can relay it live; ``finish`` builds the completed turn.
    """

    def __init__(self) -> None:
        self._content = ""
        self._tool_calls: List[Dict[str, Any]] = []
        self._finish_reason: Optional[str] = None
        self._usage = Usage()

    def add(self, chunk: Any) -> tuple[str, str]:
        usage = getattr(chunk, "usage", None)
        if usage is not None:
            self._usage = Usage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            )

        choices = getattr(chunk, "choices", None)
        if not choices:
            return "", ""

        choice = choices[0]
        delta = choice.delta
        reasoning = getattr(delta, "reasoning_content", None) or ""
        content = getattr(delta, "content", None) or ""
        self._content += content

        for tc_chunk in getattr(delta, "tool_calls", None) or ():
            while len(self._tool_calls) <= tc_chunk.index:
                self._tool_calls.append({"id": "", "name": "", "arguments": ""})

            agg_tc = self._tool_calls[tc_chunk.index]
            if tc_chunk.id:
                agg_tc["id"] = tc_chunk.id
            if tc_chunk.function:
                if tc_chunk.function.name:
                    agg_tc["name"] += tc_chunk.function.name
                if tc_chunk.function.arguments:
                    agg_tc["arguments"] += tc_chunk.function.arguments

        if choice.finish_reason:
            self._finish_reason = choice.finish_reason
        return reasoning, content

    def finish(self) -> FinalMessage:
        blocks: List[ContentBlock] = []
        if self._content:
            blocks.append(TextBlock(self._content))
        for tc in self._tool_calls:
            if not tc["id"] or not tc["name"]:
                continue
            blocks.append(
                ToolCallRequest(
                    id=tc["id"],
                    name=tc["name"],
                    arguments=_parse_arguments(tc["arguments"], tc["name"]),
                )
            )

        finish_reason = self._finish_reason or "stop"
        return FinalMessage(
            content=tuple(blocks),
            stop_reason=OPENAI_STOP_REASONS.get(finish_reason, finish_reason),
            usage=self._usage,
        )
