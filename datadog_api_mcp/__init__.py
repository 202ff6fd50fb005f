"""
Datadog API MCP - exposes the Datadog HTTP API to LLM agents over MCP.

Two tools are served: ``search`` runs an agent-authored snippet against a
pre-resolved, pre-filtered OpenAPI catalog, and ``execute`` runs a snippet
that calls the live API through a gateway gated by the write allowlist.
"""

from datadog_api_mcp.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
