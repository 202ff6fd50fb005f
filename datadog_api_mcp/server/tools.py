"""Definitions and dispatch for the ``search`` and ``execute`` tools."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from mcp import types as mcp_types

from datadog_api_mcp.authz import SAFE_POST_SUFFIXES, describe_allowed_writes
from datadog_api_mcp.catalog.store import CatalogStore
from datadog_api_mcp.config.schema import AppConfig
from datadog_api_mcp.errors import DatadogMCPError
from datadog_api_mcp.executor import execute_code, execute_search
from datadog_api_mcp.gateway import DatadogGateway
from datadog_api_mcp.truncate import truncate_response

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "search"
EXECUTE_TOOL_NAME = "execute"

# Products listed inline in the search tool description.
_PRODUCTS_PREVIEW = 30

MISSING_CREDENTIALS_MSG = (
    "DD_API_KEY and DD_APP_KEY environment variables are required for API execution."
)

SNIPPET_RULES = (
    "Snippets may import json, re, math, datetime, collections, itertools and "
    "statistics. Attributes starting with `_` and `str.format` are unavailable; "
    "use f-strings instead."
)

SPEC_SHAPE = '''
spec = {
    "paths": {
        "<path>": {                      # e.g. "/api/v1/monitor"
            "<method>": {                # get | post | put | patch | delete
                "summary": str | None,
                "description": str | None,
                "tags": list[str],
                "parameters": list[dict] | None,   # name, in, required, schema, description
                "requestBody": dict | None,        # required, content -> {mime: {schema}}
                "responses": dict | None,          # status -> {description, content}
            },
        },
    },
}
'''

DATADOG_SHAPE = '''
await datadog.request(
    method: str,                 # "GET" | "POST" | "PUT" | "PATCH" | "DELETE"
    path: str,                   # concrete path, e.g. "/api/v1/notebooks/123"; no "?" or "#"
    query: dict | None = None,   # query string; None values are dropped
    body: Any = None,            # sent as JSON
) -> dict | list | str
'''

SEARCH_EXAMPLES = '''
# Find endpoints by product tag
async def run():
    results = []
    for path, methods in spec["paths"].items():
        for method, op in methods.items():
            if any(t.lower() == "logs" for t in op.get("tags") or []):
                results.append({"method": method.upper(), "path": path, "summary": op.get("summary")})
    return results

# Get endpoint details with requestBody schema
async def run():
    op = spec["paths"].get("/api/v1/notebooks", {}).get("post") or {}
    return {"summary": op.get("summary"), "requestBody": op.get("requestBody"), "parameters": op.get("parameters")}

# Search by keyword in summary/description
async def run():
    results = []
    for path, methods in spec["paths"].items():
        for method, op in methods.items():
            text = f"{op.get('summary') or ''} {op.get('description') or ''}".lower()
            if "monitor" in text:
                results.append({"method": method.upper(), "path": path, "summary": op.get("summary")})
    return results
'''

EXECUTE_EXAMPLES = '''
# List monitors
async def run():
    return await datadog.request("GET", "/api/v1/monitor")

# Search logs
async def run():
    return await datadog.request(
        "POST",
        "/api/v2/logs/events/search",
        body={"filter": {"query": "service:web-app status:error", "from": "now-1h", "to": "now"},
              "page": {"limit": 10}},
    )

# Create a notebook
async def run():
    return await datadog.request(
        "POST",
        "/api/v1/notebooks",
        body={"data": {"type": "notebooks",
                       "attributes": {"name": "Investigation", "cells": [], "time": {"live_span": "1h"}}}},
    )
'''


@dataclass
class ServerContext:
    """Everything the tool handlers need, built once at startup."""

    config: AppConfig
    catalog: CatalogStore
    gateway: Optional[DatadogGateway] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> ServerContext:
        gateway = None
        dd = config.datadog
        if dd.has_credentials:
            gateway = DatadogGateway(
                dd.api_key or "",
                dd.app_key or "",
                dd.site,
                timeout=dd.request_timeout,
            )
        return cls(config=config, catalog=CatalogStore(config.catalog.data_dir), gateway=gateway)

    async def close(self) -> None:
        if self.gateway is not None:
            await self.gateway.close()


@dataclass(frozen=True)
class ToolResult:
    text: str
    is_error: bool = False


def _code_schema(description: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {"code": {"type": "string", "description": description}},
        "required": ["code"],
    }


def search_description(products: List[str]) -> str:
    preview = ", ".join(products[:_PRODUCTS_PREVIEW])
    suffix = "..." if len(products) > _PRODUCTS_PREVIEW else ""
    return (
        "Search the Datadog OpenAPI spec. All $refs are pre-resolved inline. "
        "Covers both v1 and v2 APIs.\n\n"
        f"Products: {preview}{suffix} ({len(products)} total)\n\n"
        "Your code is Python and must define a function named `run` "
        "(preferably `async def run():`) that returns the result. "
        f"{SNIPPET_RULES} "
        f"The catalog is bound as `spec`:\n{SPEC_SHAPE}\n"
        f"Examples:\n{SEARCH_EXAMPLES}"
    )


def execute_description() -> str:
    suffixes = ", ".join(SAFE_POST_SUFFIXES)
    return (
        "Execute Python code against the Datadog API. First use the 'search' tool "
        "to find the right endpoints, then write code using datadog.request().\n\n"
        "All GET/HEAD requests are allowed, as are POST queries to paths ending in "
        f"{suffixes}. Other writes are restricted to: {describe_allowed_writes()}.\n\n"
        "Your code must define a function named `run` (preferably `async def run():`) "
        f"that returns the result. {SNIPPET_RULES} "
        f"Available in your code:\n{DATADOG_SHAPE}\n"
        f"Examples:\n{EXECUTE_EXAMPLES}"
    )


def build_tools(ctx: ServerContext) -> List[mcp_types.Tool]:
    """Return the MCP tool definitions, with the product list filled in."""
    return [
        mcp_types.Tool(
            name=SEARCH_TOOL_NAME,
            description=search_description(ctx.catalog.products),
            inputSchema=_code_schema("Python source defining run() to search the OpenAPI spec"),
        ),
        mcp_types.Tool(
            name=EXECUTE_TOOL_NAME,
            description=execute_description(),
            inputSchema=_code_schema("Python source defining run() to execute"),
        ),
    ]


def _format_error(error: BaseException) -> str:
    return f"Error: {error}"


async def run_tool(
    ctx: ServerContext, name: str, arguments: Optional[Mapping[str, Any]]
) -> ToolResult:
    """Dispatch one tool call and render its outcome as text.

    Failures never escape: they come back as ``ToolResult(is_error=True)``
    with an ``Error: ...`` message for the agent.
    """
    code = (arguments or {}).get("code")
    if not isinstance(code, str):
        return ToolResult("Error: the 'code' argument must be a string.", is_error=True)

    timeout = ctx.config.execution.timeout
    try:
        if name == SEARCH_TOOL_NAME:
            result = await execute_search(code, ctx.catalog.spec, timeout=timeout)
        elif name == EXECUTE_TOOL_NAME:
            if ctx.gateway is None:
                return ToolResult(f"Error: {MISSING_CREDENTIALS_MSG}", is_error=True)
            result = await execute_code(code, ctx.gateway, timeout=timeout)
        else:
            return ToolResult(f"Error: unknown tool '{name}'.", is_error=True)
    except DatadogMCPError as exc:
        logger.info("Tool '%s' failed: %s", name, exc)
        return ToolResult(_format_error(exc), is_error=True)
    except Exception as exc:
        logger.exception("Unexpected failure in tool '%s'", name)
        return ToolResult(_format_error(exc), is_error=True)

    return ToolResult(truncate_response(result))
