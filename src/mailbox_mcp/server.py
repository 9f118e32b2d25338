# src/mailbox_mcp/server.py
"""MCP server over stdio or HTTP. Tool definitions and dispatch live in :mod:`mailbox_mcp.tools`."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import mcp.types as types
import structlog
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from mailbox_mcp.config import Settings
from mailbox_mcp.email_manager import EmailManager
from mailbox_mcp.tools import dispatch, list_tools
from mailbox_mcp.web import serve_http

logger = structlog.get_logger(__name__)

SERVER_NAME = "mail-mcp"


class ToolCallError(Exception):
    """Carries an already formatted error text out to the protocol layer."""


def build_server(manager: EmailManager) -> Server:
    server: Server = Server(SERVER_NAME)

    @server.list_tools()
    async def _list_tools() -> List[types.Tool]:
        return [
            types.Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema())
            for spec in list_tools()
        ]

    # arguments are validated by the request models, not against the JSON schema
    @server.call_tool(validate_input=False)
    async def _call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
        result = await dispatch(manager, name, arguments)
        if result.is_error:
            # the server turns a raised exception into an isError result with its text
            raise ToolCallError(result.text)
        return [types.TextContent(type="text", text=result.text)]

    return server


async def serve(settings: Settings) -> None:
    manager = EmailManager(imap=settings.imap, smtp=settings.smtp)
    server = build_server(manager)

    logger.info(
        "server_starting",
        name=SERVER_NAME,
        smtp_host=settings.smtp.host,
        imap_host=settings.imap.host,
        transport=settings.transport,
    )
    if settings.transport == "sse":
        await serve_http(
            server,
            host=settings.http_host,
            port=settings.http_port,
            log_level=settings.log_level,
        )
        return

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
