"""Request-scoped execution context handed to every tool call."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from copilot_agent.types.request import AgentRequest, Credentials

__all__ = ["ExecutionContext"]


def _new_execution_id() -> str:
    return f"local-agent-{uuid.uuid4()}"


@dataclass(slots=True)
class ExecutionContext:
    """
    Workflow execution state for one request.

    Created at request start, discarded when the request ends and never
    shared between requests. Tools may read and mutate it; later tool calls
    in the same request see the changes.
    """

    user_id: str = ""
    workflow_id: str = ""
    execution_id: str = field(default_factory=_new_execution_id)
    block_states: dict[str, Any] = field(default_factory=dict)
    executed_blocks: set[str] = field(default_factory=set)
    block_logs: list[dict[str, Any]] = field(default_factory=list)
    decisions: dict[str, dict[str, Any]] = field(
        default_factory=lambda: {"router": {}, "condition": {}}
    )
    completed_loops: set[str] = field(default_factory=set)
    active_execution_path: set[str] = field(default_factory=set)
    environment_variables: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(
        default_factory=lambda: {
            "start_time": datetime.now(timezone.utc).isoformat(),
            "duration": 0,
        }
    )
    credentials: Optional[Credentials] = None

    @classmethod
    def for_request(cls, request: AgentRequest) -> "ExecutionContext":
        return cls(
            user_id=request.user_id,
            workflow_id=request.workflow_id,
            credentials=request.credentials,
        )

    def tool_context(self) -> dict[str, str]:
        """The ``_context`` entry merged into every tool input."""
        return {"workflowId": self.workflow_id, "userId": self.user_id}
