"""Conversation types: content blocks, turns and the append-only conversation log."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Iterator, Mapping, Optional, Sequence, Union

from copilot_agent.types.tool import ToolCallRequest, ToolCallResult

__all__ = [
    "Role",
    "TextBlock",
    "ReasoningBlock",
    "ContentBlock",
    "ConversationTurn",
    "Conversation",
    "Usage",
    "FinalMessage",
]

_logger = logging.getLogger(__name__)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


@dataclass(frozen=True, slots=True)
class TextBlock:
    kind: ClassVar[str] = "text"

    text: str


@dataclass(frozen=True, slots=True)
class ReasoningBlock:
    """Model "thinking" kept apart from the answer.

    ``signature`` (or ``redacted_data`` for redacted thinking) must be echoed
    back unchanged when the block is replayed to the provider.
    """

    kind: ClassVar[str] = "thinking"

    text: str = ""
    signature: Optional[str] = None
    redacted_data: Optional[str] = None

    @property
    def is_redacted(self) -> bool:
        return self.redacted_data is not None


ContentBlock = Union[TextBlock, ReasoningBlock, ToolCallRequest, ToolCallResult]


def _block_from_dict(data: Mapping[str, Any]) -> ContentBlock | None:
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=str(data.get("text", "")))
    if block_type == "thinking":
        return ReasoningBlock(text=str(data.get("thinking", "")), signature=data.get("signature"))
    if block_type == "redacted_thinking":
        return ReasoningBlock(redacted_data=str(data.get("data", "")))
    if block_type == "tool_use":
        arguments = data.get("input")
        return ToolCallRequest(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            arguments=dict(arguments) if isinstance(arguments, Mapping) else {},
        )
    if block_type == "tool_result":
        content = data.get("content", "")
        if isinstance(content, list):
            content = "".join(
                str(part.get("text", "")) for part in content if isinstance(part, Mapping)
            )
        is_error = bool(data.get("is_error", False))
        return ToolCallResult(
            id=str(data.get("tool_use_id", "")),
            success=not is_error,
            result=None if is_error else content,
            error=str(content) if is_error else None,
        )
    _logger.debug("Skipping unsupported content block type %r", block_type)
    return None


def _block_to_dict(block: ContentBlock) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ReasoningBlock):
        if block.is_redacted:
            return {"type": "redacted_thinking", "data": block.redacted_data}
        data: dict[str, Any] = {"type": "thinking", "thinking": block.text}
        if block.signature is not None:
            data["signature"] = block.signature
        return data
    if isinstance(block, ToolCallRequest):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.arguments}
    return {
        "type": "tool_result",
        "tool_use_id": block.id,
        "content": block.to_model_text(),
        "is_error": not block.success,
    }


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """One contiguous block of content attributed to a single role."""

    role: Role
    content: tuple[ContentBlock, ...] = ()

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(Role.USER, (TextBlock(text),))

    @classmethod
    def assistant(cls, blocks: Sequence[ContentBlock]) -> "ConversationTurn":
        return cls(Role.ASSISTANT, tuple(blocks))

    @classmethod
    def tool_results(cls, results: Sequence[ToolCallResult]) -> "ConversationTurn":
        return cls(Role.TOOL_RESULT, tuple(results))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationTurn":
        """
        Parse a history entry such as ``{"role": "user", "content": "hi"}`` or
        an entry whose content is a list of typed blocks.

        A user entry made only of ``tool_result`` blocks becomes a TOOL_RESULT turn.
        """
        role_name = str(data.get("role", "user"))
        content = data.get("content", "")

        if isinstance(content, str):
            blocks: list[ContentBlock] = [TextBlock(content)] if content else []
        elif isinstance(content, list):
            blocks = [
                b
                for b in (_block_from_dict(item) for item in content if isinstance(item, Mapping))
                if b is not None
            ]
        else:
            blocks = [TextBlock(str(content))]

        if role_name == Role.ASSISTANT:
            role = Role.ASSISTANT
        elif role_name == Role.TOOL_RESULT or (
            blocks and all(isinstance(b, ToolCallResult) for b in blocks)
        ):
            role = Role.TOOL_RESULT
        else:
            role = Role.USER
        return cls(role, tuple(blocks))

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": [_block_to_dict(b) for b in self.content]}

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        return [b for b in self.content if isinstance(b, ToolCallRequest)]


class Conversation:
    """Append-only, ordered log of turns owned by one request."""

    def __init__(self, turns: Sequence[ConversationTurn] = ()) -> None:
        self._turns: list[ConversationTurn] = list(turns)

    @classmethod
    def from_history(cls, history: Sequence[Mapping[str, Any]] | None) -> "Conversation":
        return cls([ConversationTurn.from_dict(item) for item in history or ()])

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(tuple(self._turns))

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    def as_dict(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass(frozen=True, slots=True)
class FinalMessage:
    """The completed assistant turn returned at the end of a stream."""

    content: tuple[ContentBlock, ...] = ()
    stop_reason: Optional[str] = None
    usage: Usage = field(default_factory=Usage)

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        return [b for b in self.content if isinstance(b, ToolCallRequest)]

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn.assistant(self.content)
