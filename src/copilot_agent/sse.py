"""Server-sent-event framing for agent event streams."""

from __future__ import annotations

import json
import logging
from typing import AsyncGenerator, AsyncIterator, Optional

from copilot_agent.types.events import DoneEvent, StreamEvent

__all__ = ["EventStream", "encode_event"]

_logger = logging.getLogger(__name__)


def encode_event(event: StreamEvent) -> str:
    """Frame one event as ``event: <kind>\\ndata: <json>\\n\\n``."""
    payload = json.dumps(event.data(), default=str, ensure_ascii=False)
    return f"event: {event.kind}\ndata: {payload}\n\n"


class EventStream:
    """
    Encoded frames of one agent run, in production order.

    Iteration stops after the ``done`` frame. Closing the stream, or
    abandoning the iteration, closes the underlying event generator so no
    further provider or tool calls are made. Can only be iterated once.
    """

    def __init__(
        self,
        events: AsyncGenerator[StreamEvent, None],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._events = events
        self._closed = False
        self.logger = logger or _logger

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aiter__(self) -> AsyncIterator[str]:
        if self._closed:
            return
        try:
            async for event in self._events:
                yield encode_event(event)
                if isinstance(event, DoneEvent):
                    break
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.logger.debug("Closing event stream")
        await self._events.aclose()
