"""
Provider-neutral types for client-side tool use.

They are intentionally minimal: everything provider-specific lives in adapters.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

__all__ = ["ToolSpec", "ToolCallRequest", "ToolCallResult"]


class ToolSpec(BaseModel):
    """A callable tool as offered to the model."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = Field(min_length=1)
    description: str = ""
    # Accepted as sent; prepare_tools turns anything malformed into a usable schema.
    input_schema: Any = Field(
        default=None,
        validation_alias=AliasChoices("input_schema", "inputSchema", "parameters"),
    )


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A model-agnostic request emitted by the LLM to call a local tool."""

    kind: ClassVar[str] = "tool_use"

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolCallResult:
    """Outcome of running a tool, sent back to the LLM under the request id."""

    kind: ClassVar[str] = "tool_result"

    id: str  # must match the request id
    success: bool
    result: Any = None
    error: str | None = None
    name: str = ""

    def to_model_text(self) -> str:
        """Text the model sees for this result."""
        if not self.success:
            return f"Error: {self.error or 'Unknown error'}"
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, indent=2, default=str)

    def with_id(self, call_id: str, name: str) -> "ToolCallResult":
        return ToolCallResult(
            id=call_id, success=self.success, result=self.result, error=self.error, name=name
        )
