"""Registry of locally executable tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Final, Iterator, Mapping, Optional, Union

from copilot_agent.context import ExecutionContext
from copilot_agent.types.tool import ToolSpec

__all__ = ["PRIVILEGED_TOOLS", "RegisteredTool", "ToolHandler", "ToolRegistry"]

_logger = logging.getLogger(__name__)

# Workflow-aware tools that receive workflowId/userId in their input.
PRIVILEGED_TOOLS: Final[frozenset[str]] = frozenset(
    {
        "edit_workflow",
        "get_user_workflow",
        "get_workflow_console",
        "get_blocks_metadata",
        "get_blocks_and_tools",
        "function_execute",
    }
)

ToolHandler = Callable[
    [dict[str, Any], ExecutionContext], Union[Any, Awaitable[Any]]
]


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    name: str
    handler: ToolHandler
    privileged: bool = False
    description: str = ""
    input_schema: Optional[Mapping[str, Any]] = None

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            input_schema=dict(self.input_schema) if self.input_schema else None,
        )


class ToolRegistry:
    """
    Name → handler map consulted by the dispatcher.

    Handlers take ``(tool_input, execution_context)`` and may be plain
    functions or coroutines. Tools named in ``PRIVILEGED_TOOLS`` are always
    registered as privileged.
    """

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        privileged: bool = False,
        description: str = "",
        input_schema: Optional[Mapping[str, Any]] = None,
    ) -> RegisteredTool:
        if not name:
            raise ValueError("Tool name must be a non-empty string")
        if name in self._tools:
            _logger.warning("Replacing registered tool %s", name)
        tool = RegisteredTool(
            name=name,
            handler=handler,
            privileged=privileged or name in PRIVILEGED_TOOLS,
            description=description,
            input_schema=input_schema,
        )
        self._tools[name] = tool
        return tool

    def tool(
        self,
        name: str,
        *,
        privileged: bool = False,
        description: str = "",
        input_schema: Optional[Mapping[str, Any]] = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(
                name,
                handler,
                privileged=privileged,
                description=description,
                input_schema=input_schema,
            )
            return handler

        return decorator

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def specs(self) -> list[ToolSpec]:
        """Specs of every registered tool, in registration order."""
        return [tool.spec() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[RegisteredTool]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)
