"""HTTP surface: the streaming chat endpoint and the health check."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from copilot_agent import __version__
from copilot_agent.agent import LLMFactory, handle_request
from copilot_agent.client import create_llm
from copilot_agent.errors import ConfigurationError, UnsupportedProviderError
from copilot_agent.settings import AgentSettings
from copilot_agent.sse import EventStream
from copilot_agent.tools.registry import ToolRegistry
from copilot_agent.types.request import AgentRequest

__all__ = ["create_app", "router"]

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Liveness check."""
    return {"status": "ok", "version": __version__}


@router.post("/api/copilot/chat")
async def copilot_chat(body: AgentRequest, request: Request) -> StreamingResponse:
    """Answer one message as a ``text/event-stream`` of agent events."""
    state = request.app.state
    try:
        events = handle_request(
            body,
            state.registry,
            settings=state.settings,
            llm_factory=state.llm_factory,
        )
    except UnsupportedProviderError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConfigurationError as exc:
        logger.error(f"Agent not configured: {exc}")
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return StreamingResponse(
        EventStream(events),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


def create_app(
    registry: Optional[ToolRegistry] = None,
    settings: Optional[AgentSettings] = None,
    llm_factory: LLMFactory = create_llm,
) -> FastAPI:
    """Build the HTTP app serving the agent endpoint."""
    app = FastAPI(title="Copilot Agent", version=__version__)
    app.state.registry = registry if registry is not None else ToolRegistry()
    app.state.settings = settings or AgentSettings.from_env()
    app.state.llm_factory = llm_factory
    app.include_router(router)
    return app
