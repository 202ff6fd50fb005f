"""MCP server factory and transports (stdio and streamable HTTP)."""

import contextlib
import logging
from typing import AsyncIterator

from mcp.server import Server as McpServer
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.routing import Mount
from starlette.types import Receive, Scope, Send

from datadog_api_mcp.constants import SERVER_NAME, SERVER_VERSION, STREAMABLE_HTTP_PATH
from datadog_api_mcp.server.handlers import register_handlers
from datadog_api_mcp.server.tools import ServerContext

logger = logging.getLogger(__name__)


def create_mcp_server(ctx: ServerContext) -> McpServer:
    """Create the low-level MCP server with the tool handlers attached."""
    mcp_server = McpServer(SERVER_NAME, version=SERVER_VERSION)
    register_handlers(mcp_server, ctx)
    logger.debug("MCP server instance '%s' created.", mcp_server.name)
    return mcp_server


async def run_stdio(ctx: ServerContext) -> None:
    """Serve MCP over stdin/stdout until the client disconnects."""
    mcp_server = create_mcp_server(ctx)
    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Serving '%s' over stdio.", SERVER_NAME)
            await mcp_server.run(
                read_stream,
                write_stream,
                mcp_server.create_initialization_options(),
            )
    finally:
        await ctx.close()
        logger.info("%s stdio session ended.", SERVER_NAME)


def create_http_app(ctx: ServerContext) -> Starlette:
    """Create a Starlette ASGI app serving MCP over streamable HTTP."""
    mcp_server = create_mcp_server(ctx)
    session_manager = StreamableHTTPSessionManager(app=mcp_server, stateless=True)

    async def handle_streamable_http(scope: Scope, receive: Receive, send: Send) -> None:
        await session_manager.handle_request(scope, receive, send)

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            logger.info("Streamable HTTP session manager started.")
            try:
                yield
            finally:
                await ctx.close()
                logger.info("Streamable HTTP session manager stopped.")

    application = Starlette(
        lifespan=lifespan,
        routes=[Mount(STREAMABLE_HTTP_PATH, app=handle_streamable_http)],
    )
    logger.info(
        "Starlette ASGI app '%s' created. Streamable HTTP on %s",
        SERVER_NAME,
        STREAMABLE_HTTP_PATH,
    )
    return application
