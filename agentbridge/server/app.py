"""
HTTP streaming server.

    POST /chat     -> text/event-stream of agent loop events
    GET  /health   -> liveness
    GET  /servers  -> configured tool servers and their transports

Each /chat request gets its own AgentLoop (and so its own connections);
the router, request builder and usage statistics are shared.
"""

from collections.abc import AsyncIterator
from typing import Any

import uvicorn
from fastapi import FastAPI
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from agentbridge import __version__
from agentbridge.agent.components import AgentComponents
from agentbridge.agent.events import encode_sse
from agentbridge.agent.loop import AgentLoop, ChatRequest
from agentbridge.config.logging import get_logger, new_request_id, set_request_id
from agentbridge.config.settings import Settings

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class HealthResponse(BaseModel):
    status: str
    version: str


class ServerInfo(BaseModel):
    id: str
    transport: str
    categories: list[str] = []


async def _event_stream(loop: AgentLoop, request: ChatRequest) -> AsyncIterator[str]:
    async for event in loop.run(request):
        yield encode_sse(event)


def create_app(settings: Settings, components: AgentComponents | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Root settings
        components: Pre-built components (tests inject fakes); built from settings otherwise
    """
    components = components or AgentComponents(settings)

    app = FastAPI(
        title="agentbridge",
        description="Streaming agent runtime over MCP tool servers",
        version=__version__,
    )
    app.state.components = components

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/servers", response_model=list[ServerInfo])
    async def servers() -> list[ServerInfo]:
        return [
            ServerInfo(id=server_id, transport=config.type, categories=config.categories)
            for server_id, config in components.server_map.items()
        ]

    @app.post("/chat")
    async def chat(request: ChatRequest) -> StreamingResponse:
        request_id = new_request_id()
        set_request_id(request_id)
        logger.info(
            f"Chat request: agent={request.agent_id or 'default'}, "
            f"servers={request.enabled_servers or 'preset'}, history={len(request.conversation_history)}"
        )
        loop = components.create_loop()
        return StreamingResponse(
            _event_stream(loop, request),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Request-ID": request_id},
        )

    return app


def run_server(settings: Settings, **uvicorn_kwargs: Any) -> None:
    """Serve the app with uvicorn on the configured host and port."""
    app = create_app(settings)
    logger.info(f"Serving on http://{settings.server.host}:{settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
        # Keep the handlers setup_logging() installed on the uvicorn loggers
        log_config=None,
        **uvicorn_kwargs,
    )
