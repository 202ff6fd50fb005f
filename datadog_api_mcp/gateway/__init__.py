"""Policy-gated client for the live Datadog API."""

from datadog_api_mcp.gateway.client import DatadogGateway, build_query_params

__all__ = ["DatadogGateway", "build_query_params"]
