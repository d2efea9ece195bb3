"""Tool Dispatcher: routes a model tool request to its handler."""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Mapping, Optional

from copilot_agent.context import ExecutionContext
from copilot_agent.tools.registry import RegisteredTool, ToolRegistry
from copilot_agent.types.tool import ToolCallResult

__all__ = ["ToolDispatcher"]

LOGGER = logging.getLogger(__name__)


class ToolDispatcher:
    """Executes tool calls against a registry.

    ``execute`` never raises: unknown tools and handler exceptions become
    failed results the model can read and react to.

    Example:
        dispatcher = ToolDispatcher(registry)
        result = await dispatcher.execute("edit_workflow", {"operations": []}, context)
    """

    def __init__(self, registry: ToolRegistry, *, logger: Optional[logging.Logger] = None) -> None:
        self._registry = registry
        self._logger = logger or LOGGER

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute(
        self,
        tool_name: str,
        tool_input: Mapping[str, Any] | None,
        context: ExecutionContext,
        *,
        call_id: str = "",
    ) -> ToolCallResult:
        """Run one tool call and return its result."""
        tool = self._registry.get(tool_name)
        if tool is None:
            self._logger.warning("Unknown tool requested: %s", tool_name)
            return ToolCallResult(
                id=call_id, success=False, error=f"Unknown tool: {tool_name}", name=tool_name
            )

        prepared = self.prepare_input(tool, tool_input, context)
        self._logger.info(
            "Executing tool %s",
            tool_name,
            extra={"tool": tool_name, "execution_id": context.execution_id},
        )
        start = time.perf_counter()
        try:
            output = tool.handler(prepared, context)
            if inspect.isawaitable(output):
                output = await output
        except Exception as exc:
            self._logger.exception("Tool execution failed: %s", tool_name)
            return ToolCallResult(
                id=call_id,
                success=False,
                error=str(exc) or exc.__class__.__name__,
                name=tool_name,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._logger.info(
            "Tool %s completed in %.1fms",
            tool_name,
            elapsed_ms,
            extra={"tool": tool_name, "execution_time_ms": elapsed_ms},
        )
        return ToolCallResult(id=call_id, success=True, result=output, name=tool_name)

    def prepare_input(
        self,
        tool: RegisteredTool,
        tool_input: Mapping[str, Any] | None,
        context: ExecutionContext,
    ) -> dict[str, Any]:
        """
        Copy *tool_input* and merge request identity into it.

        Privileged tools get workflowId/userId unless the model supplied them.
        Other tools get the request's OAuth credential when exactly one is
        associated and the model did not pick one. Every tool gets ``_context``.
        """
        prepared = dict(tool_input or {})

        if tool.privileged:
            prepared.setdefault("workflowId", context.workflow_id)
            prepared.setdefault("userId", context.user_id)
        elif context.credentials is not None and not prepared.get("credential"):
            credential = context.credentials.single_oauth_provider()
            if credential is not None:
                prepared["credential"] = credential
            elif len(context.credentials.oauth) > 1:
                self._logger.debug(
                    "Multiple OAuth credentials associated, leaving credential unset",
                    extra={"tool": tool.name, "count": len(context.credentials.oauth)},
                )

        prepared["_context"] = context.tool_context()
        return prepared
