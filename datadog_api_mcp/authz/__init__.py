"""Write allowlist: request authorization for Datadog API calls."""

from datadog_api_mcp.authz.allowlist import (
    SAFE_POST_SUFFIXES,
    WRITE_ALLOWLIST,
    AllowlistEntry,
    HttpMethod,
    describe_allowed_writes,
    is_allowed_at_catalog_time,
    is_allowed_at_request_time,
    policy_fingerprint,
)
from datadog_api_mcp.authz.patterns import matches

__all__ = [
    "AllowlistEntry",
    "HttpMethod",
    "SAFE_POST_SUFFIXES",
    "WRITE_ALLOWLIST",
    "describe_allowed_writes",
    "is_allowed_at_catalog_time",
    "is_allowed_at_request_time",
    "matches",
    "policy_fingerprint",
]
