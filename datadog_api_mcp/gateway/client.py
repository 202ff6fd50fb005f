"""Runtime gateway to the live Datadog API.

Every call is checked against the write allowlist with its concrete path
before a request object is even built.  Denied calls raise
:class:`~datadog_api_mcp.errors.PolicyDeniedError` and never touch the
network.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from datadog_api_mcp.authz import describe_allowed_writes, is_allowed_at_request_time
from datadog_api_mcp.constants import DD_REQUEST_TIMEOUT, DEFAULT_DD_SITE
from datadog_api_mcp.errors import DatadogAPIError, PolicyDeniedError

logger = logging.getLogger(__name__)

QueryValue = Optional[Any]

# Characters that would change how a path splits into URL components.
_URL_DELIMS = frozenset("?#\\")


def build_query_params(query: Optional[Mapping[str, QueryValue]]) -> Dict[str, str]:
    """Drop ``None`` values and stringify the rest (booleans lower-cased)."""
    params: Dict[str, str] = {}
    for key, value in (query or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params


class DatadogGateway:
    """Async client for the Datadog API with policy enforcement.

    Snippets reach it only through :class:`~datadog_api_mcp.executor.SnippetClient`.

    Parameters
    ----------
    api_key / app_key:
        Datadog credentials sent as ``DD-API-KEY`` and
        ``DD-APPLICATION-KEY``.
    site:
        Datadog site; requests go to ``https://api.<site>``.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport (tests inject ``MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        app_key: str,
        site: str = DEFAULT_DD_SITE,
        *,
        timeout: float = DD_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._app_key = app_key
        self._base_url = f"https://api.{site}"
        self._host = httpx.URL(self._base_url).host
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ── Lifecycle ────────────────────────────────────────────────

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "DD-API-KEY": self._api_key,
                    "DD-APPLICATION-KEY": self._app_key,
                    "Accept": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Shut down the HTTP client gracefully."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> DatadogGateway:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ── Requests ─────────────────────────────────────────────────

    def _authorize(self, method: str, path: str) -> httpx.URL:
        """Resolve *path* against the site and check the policy on the result.

        The allowlist sees the path exactly as it will be sent: dot
        segments are collapsed and percent-escapes decoded first.  Query
        strings and fragments belong in ``query`` and are refused here, as
        is anything that would leave the Datadog host.
        """
        url: Optional[httpx.URL] = None
        if isinstance(path, str) and path.startswith("/") and not _URL_DELIMS.intersection(path):
            try:
                url = httpx.URL(self._base_url + path)
            except httpx.InvalidURL:
                url = None

        if (
            url is None
            or url.host != self._host
            or any(segment in (".", "..") for segment in url.path.split("/"))
            or not is_allowed_at_request_time(method, url.path)
        ):
            logger.warning("Policy DENIED: %s %s", method, path)
            raise PolicyDeniedError(method, path, describe_allowed_writes())
        return url

    async def request(
        self,
        method: str,
        path: str,
        query: Optional[Mapping[str, QueryValue]] = None,
        body: Any = None,
    ) -> Any:
        """Send one API call and return parsed JSON (or text).

        Raises:
            PolicyDeniedError: The allowlist rejects *method* + *path*.
            DatadogAPIError: The API answered with a non-2xx status.
        """
        url = self._authorize(method, path)

        client = self._ensure_client()
        headers: Dict[str, str] = {}
        content: Optional[bytes] = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body).encode("utf-8")

        logger.info("Datadog API %s %s", method.upper(), url.path)
        resp = await client.request(
            method.upper(),
            url,
            params=build_query_params(query),
            headers=headers,
            content=content,
        )

        if not resp.is_success:
            rate_limit_reset = resp.headers.get("x-ratelimit-reset")
            logger.warning("Datadog API %s %s → %d", method.upper(), path, resp.status_code)
            raise DatadogAPIError(resp.status_code, resp.text, rate_limit_reset)

        content_type = resp.headers.get("content-type", "")
        if "application/json" in content_type:
            return resp.json()
        return resp.text
