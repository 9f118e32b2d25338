# src/mailbox_mcp/web.py
"""HTTP transport.

``/mcp`` is the stateless streamable-HTTP endpoint with plain JSON responses.
Older clients open an event stream on ``/sse`` and post their requests to the
``/messages/`` endpoint announced on that stream.
"""
from __future__ import annotations

import contextlib
from typing import AsyncIterator

import structlog
import uvicorn
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

logger = structlog.get_logger(__name__)

MCP_PATH = "/mcp"
SSE_PATH = "/sse"
MESSAGES_PATH = "/messages/"


class StreamableHTTPEndpoint:
    def __init__(self, manager: StreamableHTTPSessionManager) -> None:
        self._manager = manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._manager.handle_request(scope, receive, send)


class SSEEndpoint:
    """Runs one server session for as long as the client keeps the stream open."""

    def __init__(self, server: Server, transport: SseServerTransport) -> None:
        self._server = server
        self._transport = transport

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.info("sse_session_opened", client=scope.get("client"))
        async with self._transport.connect_sse(scope, receive, send) as (read_stream, write_stream):
            await self._server.run(read_stream, write_stream, self._server.create_initialization_options())
        logger.info("sse_session_closed", client=scope.get("client"))


def create_app(server: Server) -> Starlette:
    sse = SseServerTransport(MESSAGES_PATH)
    # stateless: every request gets its own transport
    manager = StreamableHTTPSessionManager(app=server, json_response=True, stateless=True)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with manager.run():
            yield

    return Starlette(
        routes=[
            Route(MCP_PATH, endpoint=StreamableHTTPEndpoint(manager)),
            Route(SSE_PATH, endpoint=SSEEndpoint(server, sse), methods=["GET"]),
            Mount(MESSAGES_PATH, app=sse.handle_post_message),
        ],
        lifespan=lifespan,
    )


async def serve_http(server: Server, *, host: str, port: int, log_level: str = "INFO") -> None:
    config = uvicorn.Config(
        create_app(server),
        host=host,
        port=port,
        log_level=log_level.lower(),
    )
    logger.info("http_listening", url=f"http://{host}:{port}{MCP_PATH}", sse=SSE_PATH)
    await uvicorn.Server(config).serve()
