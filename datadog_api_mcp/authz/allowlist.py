"""Access control for Datadog API operations.

Three tiers, first match wins:

1. ``GET``/``HEAD`` are always allowed.
2. Read-only ``POST`` endpoints (``/search``, ``/aggregate`` and so on) are allowed
   by path suffix.
3. Writes (``POST`` create, ``PUT``, ``DELETE``, ``PATCH``) are allowed only
   if explicitly listed in :data:`WRITE_ALLOWLIST`.

Anything else is denied.

The same tables back two entry points:

* :func:`is_allowed_at_catalog_time` compares template paths from the
  upstream OpenAPI description by string equality.  It decides which
  operations survive catalog reduction.
* :func:`is_allowed_at_request_time` matches concrete request paths
  (``/api/v1/notebooks/48213``) against the templates.  The gateway calls
  it before every outbound request.

Usage::

    is_allowed_at_catalog_time("PUT", "/api/v1/notebooks/{notebook_id}")  # True
    is_allowed_at_request_time("DELETE", "/api/v1/notebooks/99")          # True
    is_allowed_at_request_time("POST", "/api/v1/monitor")                 # False
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from datadog_api_mcp.authz.patterns import matches


class HttpMethod(str, Enum):
    """HTTP methods understood by the policy."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass(frozen=True)
class AllowlistEntry:
    """A single permitted write operation.

    Attributes
    ----------
    method:
        Upper-case HTTP method.
    path:
        OpenAPI path template, e.g. ``/api/v1/notebooks/{notebook_id}``.
    """

    method: str
    path: str


WRITE_ALLOWLIST: Tuple[AllowlistEntry, ...] = (
    # Notebooks
    AllowlistEntry("POST", "/api/v1/notebooks"),
    AllowlistEntry("PUT", "/api/v1/notebooks/{notebook_id}"),
    AllowlistEntry("DELETE", "/api/v1/notebooks/{notebook_id}"),
    # Dashboards
    AllowlistEntry("POST", "/api/v1/dashboard"),
    AllowlistEntry("PUT", "/api/v1/dashboard/{dashboard_id}"),
    AllowlistEntry("DELETE", "/api/v1/dashboard/{dashboard_id}"),
)

# Many Datadog endpoints take complex query bodies over POST but are reads.
SAFE_POST_SUFFIXES: Tuple[str, ...] = (
    "/search",
    "/aggregate",
    "/analytics",
    "/query",
    "/estimate",
)

READ_METHODS = frozenset({HttpMethod.GET.value, HttpMethod.HEAD.value})


def _index_by_method(entries: Tuple[AllowlistEntry, ...]) -> Dict[str, Tuple[str, ...]]:
    index: Dict[str, Tuple[str, ...]] = {}
    for entry in entries:
        index[entry.method] = index.get(entry.method, ()) + (entry.path,)
    return index


_WRITES_BY_METHOD = _index_by_method(WRITE_ALLOWLIST)


def _normalize(method: str) -> str:
    return (method or "").upper()


def is_safe_post(method: str, path: str) -> bool:
    """Return ``True`` for a ``POST`` whose path ends in a read-only suffix."""
    return _normalize(method) == HttpMethod.POST.value and path.endswith(SAFE_POST_SUFFIXES)


def is_allowed_at_catalog_time(method: str, template_path: str) -> bool:
    """Decide whether an upstream catalog operation is kept.

    *template_path* carries the same ``{param}`` syntax as the allowlist,
    so writes are compared literally.
    """
    upper = _normalize(method)
    if upper in READ_METHODS:
        return True
    if is_safe_post(upper, template_path):
        return True
    return template_path in _WRITES_BY_METHOD.get(upper, ())


def is_allowed_at_request_time(method: str, concrete_path: str) -> bool:
    """Decide whether an outgoing call with a concrete path may be sent."""
    upper = _normalize(method)
    if upper in READ_METHODS:
        return True
    if is_safe_post(upper, concrete_path):
        return True
    return any(matches(template, concrete_path) for template in _WRITES_BY_METHOD.get(upper, ()))


def describe_allowed_writes() -> str:
    """Render the write allowlist as ``METHOD path`` pairs for humans."""
    return ", ".join(f"{e.method} {e.path}" for e in WRITE_ALLOWLIST)


def policy_fingerprint() -> str:
    """SHA-256 over the allowlist and safe suffixes.

    Stored in the build manifest so a changed policy forces a catalog
    rebuild.
    """
    payload = json.dumps(
        {
            "writes": [[e.method, e.path] for e in WRITE_ALLOWLIST],
            "safe_post_suffixes": list(SAFE_POST_SUFFIXES),
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
