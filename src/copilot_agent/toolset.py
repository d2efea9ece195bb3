"""Tool-set preparation: schema normalization, name deduplication and the per-request cap."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from copilot_agent.schema import normalize_schema
from copilot_agent.types.tool import ToolSpec

__all__ = ["DEFAULT_MAX_TOOLS", "dedupe_tools", "limit_tools", "normalize_tool", "prepare_tools"]

DEFAULT_MAX_TOOLS = 100
# Rough prompt cost of one tool definition, used only for log output.
_TOKENS_PER_TOOL = 150

_logger = logging.getLogger(__name__)


def normalize_tool(spec: ToolSpec) -> ToolSpec:
    """Return *spec* with a provider-safe schema and a non-empty description."""
    return ToolSpec(
        name=spec.name,
        description=spec.description or spec.name,
        input_schema=normalize_schema(spec.input_schema),
    )


def dedupe_tools(
    specs: Iterable[ToolSpec], logger: Optional[logging.Logger] = None
) -> list[ToolSpec]:
    """Keep the first tool per name; later duplicates are logged and dropped."""
    log = logger or _logger
    unique: dict[str, ToolSpec] = {}
    duplicates: list[str] = []
    total = 0
    for spec in specs:
        total += 1
        if spec.name in unique:
            duplicates.append(spec.name)
        else:
            unique[spec.name] = spec

    if duplicates:
        log.warning(
            "Duplicate tool names detected and removed",
            extra={
                "duplicates": sorted(set(duplicates)),
                "original_count": total,
                "unique_count": len(unique),
            },
        )
    return list(unique.values())


def limit_tools(
    base_tools: Sequence[ToolSpec],
    tools: Sequence[ToolSpec],
    max_tools: int = DEFAULT_MAX_TOOLS,
    logger: Optional[logging.Logger] = None,
) -> list[ToolSpec]:
    """
    Cap the combined tool set at *max_tools*.

    Base tools are kept first and in full; ad hoc tools fill the remaining
    slots in their original order.
    """
    log = logger or _logger
    total = len(base_tools) + len(tools)
    if total <= max_tools:
        return [*base_tools, *tools]

    remaining = max_tools - len(base_tools)
    if remaining > 0:
        limited = [*base_tools, *tools[:remaining]]
    else:
        limited = list(base_tools[:max_tools])

    log.warning(
        f"Too many tools provided ({total}), limiting to {max_tools}",
        extra={
            "original_count": total,
            "limited_count": len(limited),
            "estimated_tokens": total * _TOKENS_PER_TOOL,
        },
    )
    return limited


def prepare_tools(
    base_tools: Sequence[ToolSpec],
    tools: Sequence[ToolSpec],
    max_tools: int = DEFAULT_MAX_TOOLS,
    logger: Optional[logging.Logger] = None,
) -> list[ToolSpec]:
    """
    Build the tool set sent with every turn of a request.

    Schemas are normalized, names deduplicated across base-then-ad-hoc tools
    (so a base tool wins a name clash), then the cap is applied.
    """
    combined = dedupe_tools((normalize_tool(t) for t in [*base_tools, *tools]), logger)
    base_names = {t.name for t in base_tools}
    base = [t for t in combined if t.name in base_names]
    extra = [t for t in combined if t.name not in base_names]
    return limit_tools(base, extra, max_tools, logger)
