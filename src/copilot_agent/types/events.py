"""
Events flowing out of a request.

``StreamEvent`` values are what the client sees (one SSE frame each).
``TurnEvent`` values are what a provider client yields for one model turn:
the live content/reasoning ``StreamEvent`` values plus internal markers and
exactly one terminal ``TurnCompleted`` or ``TurnFailed``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from copilot_agent.errors import ProviderError
from copilot_agent.types.chat import FinalMessage, Usage
from copilot_agent.types.tool import ToolCallRequest

__all__ = [
    "StartEvent",
    "ReasoningStartEvent",
    "ReasoningDeltaEvent",
    "ReasoningEndEvent",
    "ContentDeltaEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "ErrorEvent",
    "DoneEvent",
    "StreamEvent",
    "ToolUseReady",
    "TurnCompleted",
    "TurnFailed",
    "TurnEvent",
]


@dataclass(frozen=True, slots=True)
class StartEvent:
    kind: ClassVar[str] = "start"

    model: str
    provider: str
    system_prompt: str

    def data(self) -> Any:
        return {"model": self.model, "provider": self.provider, "systemPrompt": self.system_prompt}


@dataclass(frozen=True, slots=True)
class ReasoningStartEvent:
    kind: ClassVar[str] = "reasoning"

    def data(self) -> Any:
        return {"phase": "start"}


@dataclass(frozen=True, slots=True)
class ReasoningDeltaEvent:
    kind: ClassVar[str] = "reasoning"

    text: str

    def data(self) -> Any:
        return self.text


@dataclass(frozen=True, slots=True)
class ReasoningEndEvent:
    kind: ClassVar[str] = "reasoning"

    duration_ms: int

    def data(self) -> Any:
        return {"phase": "end", "durationMs": self.duration_ms}


@dataclass(frozen=True, slots=True)
class ContentDeltaEvent:
    kind: ClassVar[str] = "content"

    text: str

    def data(self) -> Any:
        return self.text


@dataclass(frozen=True, slots=True)
class ToolCallEvent:
    kind: ClassVar[str] = "tool_call"

    id: str
    name: str
    arguments: dict[str, Any]
    # Tool input is never streamed partially.
    partial: bool = False

    def data(self) -> Any:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "partial": self.partial,
        }


@dataclass(frozen=True, slots=True)
class ToolResultEvent:
    kind: ClassVar[str] = "tool_result"

    id: str
    name: str
    success: bool
    result: Any = None
    error: Optional[str] = None

    def data(self) -> Any:
        return {
            "toolCallId": self.id,
            "toolName": self.name,
            "success": self.success,
            "result": self.result,
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    kind: ClassVar[str] = "error"

    message: str
    display_message: str

    def data(self) -> Any:
        return {"message": self.message, "displayMessage": self.display_message}


@dataclass(frozen=True, slots=True)
class DoneEvent:
    kind: ClassVar[str] = "done"

    stop_reason: Optional[str] = None
    usage: Optional[Usage] = None

    def data(self) -> Any:
        payload: dict[str, Any] = {}
        if self.stop_reason is not None:
            payload["stopReason"] = self.stop_reason
        if self.usage is not None:
            payload["usage"] = self.usage.as_dict()
        return payload


StreamEvent = Union[
    StartEvent,
    ReasoningStartEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ContentDeltaEvent,
    ToolCallEvent,
    ToolResultEvent,
    ErrorEvent,
    DoneEvent,
]


@dataclass(frozen=True, slots=True)
class ToolUseReady:
    """A tool_use block finished streaming; execution waits for the full turn."""

    request: ToolCallRequest


@dataclass(frozen=True, slots=True)
class TurnCompleted:
    message: FinalMessage = field(default_factory=FinalMessage)


@dataclass(frozen=True, slots=True)
class TurnFailed:
    error: ProviderError


TurnEvent = Union[
    ReasoningStartEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ContentDeltaEvent,
    ToolUseReady,
    TurnCompleted,
    TurnFailed,
]

LIVE_EVENTS: tuple[type, ...] = (
    ReasoningStartEvent,
    ReasoningDeltaEvent,
    ReasoningEndEvent,
    ContentDeltaEvent,
)
