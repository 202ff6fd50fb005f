"""Build manifest and staleness detection for the API catalog.

The manifest written next to ``spec.json`` records what the catalog was
built from: a fingerprint of the write allowlist and the content length
of each upstream OpenAPI description.  At startup the catalog counts as
stale when:

* no manifest or no ``spec.json`` exists,
* the allowlist changed since the build, or
* an upstream description reports a different ``Content-Length``.

Upstream probes are best-effort.  A network failure never marks the
catalog stale; only a confirmed mismatch does.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

import httpx

from datadog_api_mcp.authz import policy_fingerprint
from datadog_api_mcp.constants import (
    CATALOG_FILE,
    MANIFEST_FILE,
    SPEC_URLS,
    UPSTREAM_HEAD_TIMEOUT,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildManifest:
    """What a catalog build was derived from."""

    policy_hash: str
    v1_content_length: int
    v2_content_length: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BuildManifest:
        return cls(
            policy_hash=str(data["policy_hash"]),
            v1_content_length=int(data["v1_content_length"]),
            v2_content_length=int(data["v2_content_length"]),
        )


def manifest_path(data_dir: str) -> str:
    return os.path.join(data_dir, MANIFEST_FILE)


def read_manifest(data_dir: str) -> Optional[BuildManifest]:
    """Return the stored manifest, or ``None`` if absent or unreadable."""
    path = manifest_path(data_dir)
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return BuildManifest.from_dict(json.load(f))
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.warning("Ignoring unreadable build manifest %s: %s", path, exc)
        return None


def write_manifest(data_dir: str, manifest: BuildManifest) -> str:
    os.makedirs(data_dir, exist_ok=True)
    path = manifest_path(data_dir)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(manifest.to_dict(), f, indent=2)
        f.write("\n")
    return path


async def fetch_content_length(client: httpx.AsyncClient, url: str) -> Optional[int]:
    """``HEAD`` *url* and return its ``Content-Length``.

    Returns ``None`` on any failure (network error, timeout, non-2xx,
    missing or malformed header).
    """
    try:
        resp = await client.head(url, timeout=UPSTREAM_HEAD_TIMEOUT)
    except httpx.HTTPError as exc:
        logger.debug("HEAD %s failed: %s", url, exc)
        return None
    if not resp.is_success:
        return None
    header = resp.headers.get("content-length")
    if header is None:
        return None
    try:
        return int(header)
    except ValueError:
        return None


async def check_staleness(
    data_dir: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Return why the catalog in *data_dir* needs rebuilding, or ``None``."""
    manifest = read_manifest(data_dir)
    if manifest is None:
        return "no build manifest found"

    if not os.path.isfile(os.path.join(data_dir, CATALOG_FILE)):
        return "spec.json missing"

    if manifest.policy_hash != policy_fingerprint():
        return "allowlist changed"

    own_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        v1_length, v2_length = await asyncio.gather(
            fetch_content_length(client, SPEC_URLS["v1"]),
            fetch_content_length(client, SPEC_URLS["v2"]),
        )
    finally:
        if own_client:
            await client.aclose()

    if v1_length is not None and v1_length != manifest.v1_content_length:
        return "upstream v1 spec changed"
    if v2_length is not None and v2_length != manifest.v2_content_length:
        return "upstream v2 spec changed"

    if v1_length is None and v2_length is None:
        logger.warning("Could not reach upstream specs to check for updates")

    return None
