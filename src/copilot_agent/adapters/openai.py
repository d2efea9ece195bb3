"""OpenAI adapter for pure request/response transformations."""

from __future__ import annotations

import json
from typing import Any, Sequence

from copilot_agent.types.chat import Conversation, ConversationTurn, Role
from copilot_agent.types.tool import ToolCallResult, ToolSpec

# Sent through ``extra_body``; the SDK signature may not know them.
PASSTHROUGH_KEYS = ("verbosity", "reasoning_effort")


class OpenAIRequestAdapter:
    """Adapter for converting between the conversation model and Chat Completions."""

    def to_provider(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Build Chat Completions arguments (everything except ``model`` and ``stream``)."""
        openai_messages: list[dict[str, Any]] = []
        if system_prompt:
            openai_messages.append({"role": "system", "content": system_prompt})
        for turn in conversation:
            openai_messages.extend(self.convert_turn(turn))

        base_params = dict(params)
        base_params.pop("stream", None)
        # Extended thinking budgets have no Chat Completions equivalent.
        base_params.pop("thinking_budget", None)
        extras = base_params.pop("extra", {})

        base_params = {k: v for k, v in base_params.items() if v is not None}
        for k, v in extras.items():
            base_params.setdefault(k, v)

        extra_body = {k: base_params.pop(k) for k in PASSTHROUGH_KEYS if k in base_params}
        if extra_body:
            base_params["extra_body"] = {**base_params.get("extra_body", {}), **extra_body}

        request: dict[str, Any] = {"messages": openai_messages, **base_params}
        if tools:
            request["tools"] = self.convert_tools(tools)
        return request

    def convert_tools(self, tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or tool.name,
                    "parameters": tool.input_schema or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
        ]

    def convert_turn(self, turn: ConversationTurn) -> list[dict[str, Any]]:
        """One turn can expand to several messages (one per tool result)."""
        if turn.role == Role.TOOL_RESULT:
            return [
                self.tool_result_message(block)
                for block in turn.content
                if isinstance(block, ToolCallResult)
            ]

        if turn.role == Role.USER:
            return [{"role": "user", "content": turn.text}]

        message: dict[str, Any] = {"role": "assistant", "content": turn.text or None}
        if turn.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in turn.tool_calls
            ]
        elif message["content"] is None:
            message["content"] = ""
        return [message]

    def tool_result_message(self, result: ToolCallResult) -> dict[str, Any]:
        """Convert ToolCallResult to an OpenAI tool message."""
        return {
            "role": "tool",
            "tool_call_id": result.id,
            "content": result.to_model_text(),
        }
