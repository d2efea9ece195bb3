"""Anthropic adapter for pure request/response transformations."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from copilot_agent.types.chat import (
    ContentBlock,
    Conversation,
    ConversationTurn,
    FinalMessage,
    ReasoningBlock,
    Role,
    TextBlock,
    Usage,
)
from copilot_agent.types.tool import ToolCallRequest, ToolCallResult, ToolSpec

_logger = logging.getLogger(__name__)


def ephemeral(text: str) -> dict[str, Any]:
    """Return a text block marked for Anthropic's 5‑minute *ephemeral* prompt cache."""
    return {
        "type": "text",
        "text": text,
        "cache_control": {"type": "ephemeral"},
    }


class AnthropicRequestAdapter:
    """Adapter for converting between the conversation model and the Messages API."""

    def to_provider(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Build Messages API arguments (everything except ``model``)."""
        messages = [
            msg for msg in (self.convert_turn(turn) for turn in conversation) if msg is not None
        ]

        base_params = dict(params)
        base_params.pop("stream", None)
        extras = base_params.pop("extra", {})

        # Anthropic requires max_tokens
        if base_params.get("max_tokens") is None:
            base_params["max_tokens"] = 4096

        budget = base_params.pop("thinking_budget", None)
        if budget:
            base_params["thinking"] = {"type": "enabled", "budget_tokens": budget}

        if "stop" in base_params:
            stop = base_params.pop("stop")
            if stop:
                base_params["stop_sequences"] = stop if isinstance(stop, list) else [stop]

        user = base_params.pop("user", None)
        if user:
            base_params["metadata"] = {"user_id": user}

        if isinstance(base_params.get("tool_choice"), str):
            base_params["tool_choice"] = {"type": base_params["tool_choice"]}

        base_params = {k: v for k, v in base_params.items() if v is not None}
        for k, v in extras.items():
            base_params.setdefault(k, v)

        request: dict[str, Any] = {"messages": messages, **base_params}
        if system_prompt:
            request["system"] = [ephemeral(system_prompt)]
        if tools:
            request["tools"] = self.convert_tools(tools)
        return request

    def convert_tools(self, tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description or tool.name,
                "input_schema": tool.input_schema or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]

    def convert_turn(self, turn: ConversationTurn) -> Optional[dict[str, Any]]:
        """Convert one turn to a Messages API message, or None when nothing is sendable."""
        if turn.role == Role.TOOL_RESULT:
            content = [
                self.tool_result_block(block)
                for block in turn.content
                if isinstance(block, ToolCallResult)
            ]
            role = "user"
        else:
            content = [
                part
                for part in (self._content_block(block) for block in turn.content)
                if part is not None
            ]
            role = turn.role.value

        if not content:
            _logger.debug("Skipping empty %s turn", turn.role.value)
            return None
        return {"role": role, "content": content}

    def _content_block(self, block: ContentBlock) -> Optional[dict[str, Any]]:
        if isinstance(block, TextBlock):
            return {"type": "text", "text": block.text} if block.text else None
        if isinstance(block, ReasoningBlock):
            if block.is_redacted:
                return {"type": "redacted_thinking", "data": block.redacted_data}
            # Unsigned thinking cannot be replayed; the API rejects it.
            if block.signature is None:
                return None
            return {"type": "thinking", "thinking": block.text, "signature": block.signature}
        if isinstance(block, ToolCallRequest):
            return {
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.arguments,
            }
        return self.tool_result_block(block)

    def tool_result_block(self, result: ToolCallResult) -> dict[str, Any]:
        """Convert ToolCallResult to an Anthropic tool_result content block."""
        block: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": result.id,
            "content": result.to_model_text(),
        }
        if not result.success:
            block["is_error"] = True
        return block

    def block_from_provider(self, block: Any) -> Optional[ContentBlock]:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            return TextBlock(block.text)
        if block_type == "thinking":
            return ReasoningBlock(text=block.thinking, signature=getattr(block, "signature", None))
        if block_type == "redacted_thinking":
            return ReasoningBlock(redacted_data=block.data)
        if block_type == "tool_use":
            arguments = block.input
            return ToolCallRequest(
                id=block.id,
                name=block.name,
                arguments=dict(arguments) if hasattr(arguments, "items") else {},
            )
        return None

    def from_provider(self, raw: Any) -> FinalMessage:
        """Convert a final Anthropic ``Message`` to a FinalMessage."""
        blocks = [
            b for b in (self.block_from_provider(block) for block in raw.content or ()) if b
        ]
        usage = getattr(raw, "usage", None)
        return FinalMessage(
            content=tuple(blocks),
            stop_reason=getattr(raw, "stop_reason", None),
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
        )
