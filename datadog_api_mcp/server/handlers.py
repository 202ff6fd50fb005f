"""MCP handler functions - registered on the MCP server instance."""

import logging
from typing import Any, Dict, List

from mcp import types as mcp_types
from mcp.server import Server as McpServer

from datadog_api_mcp.errors import ToolCallError
from datadog_api_mcp.server.tools import ServerContext, build_tools, run_tool

logger = logging.getLogger(__name__)


def register_handlers(mcp_server: McpServer, ctx: ServerContext) -> None:
    """Register all MCP protocol handlers on the server instance."""

    @mcp_server.list_tools()
    async def handle_list_tools() -> List[mcp_types.Tool]:
        logger.debug("Handling listTools request...")
        return build_tools(ctx)

    @mcp_server.call_tool()
    async def handle_call_tool(name: str, arguments: Dict[str, Any]) -> List[mcp_types.TextContent]:
        logger.debug("Handling callTool: name='%s'", name)
        result = await run_tool(ctx, name, arguments)
        if result.is_error:
            # The low-level server turns this into an isError tool result.
            raise ToolCallError(result.text)
        return [mcp_types.TextContent(type="text", text=result.text)]

    logger.debug("All MCP protocol handlers registered on server instance.")
