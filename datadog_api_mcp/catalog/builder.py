"""Catalog reduction: fetch, resolve, filter and merge the Datadog API specs.

The v1 and v2 OpenAPI descriptions are downloaded, every operation is run
through :func:`~datadog_api_mcp.authz.is_allowed_at_catalog_time`, kept
operations get their ``$ref`` pointers inlined, and the result is written
as a single ``spec.json`` together with a ranked ``products.json`` and the
build manifest.

Denied operations are dropped entirely; no partial operation objects are
emitted.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import re
import tempfile
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import httpx
import yaml

from datadog_api_mcp.authz import is_allowed_at_catalog_time, policy_fingerprint
from datadog_api_mcp.catalog.manifest import BuildManifest, check_staleness, write_manifest
from datadog_api_mcp.constants import (
    CATALOG_FILE,
    PRODUCTS_FILE,
    SPEC_URLS,
    UPSTREAM_FETCH_TIMEOUT,
)
from datadog_api_mcp.errors import CatalogBuildError

logger = logging.getLogger(__name__)

# HEAD is not a catalog concept.
HTTP_METHODS = ("get", "post", "put", "patch", "delete")

_PRODUCT_RE = re.compile(r"/api/v[12]/([^/]+)")

# libyaml parses the multi-megabyte specs far faster when available.
_YAML_LOADER = getattr(yaml, "CSafeLoader", yaml.SafeLoader)


@dataclass
class FetchResult:
    spec: Dict[str, Any]
    content_length: int


@dataclass
class ProcessedSpec:
    """Reduced paths of one upstream description plus counters."""

    paths: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    products: Counter = field(default_factory=Counter)
    endpoint_count: int = 0
    removed_count: int = 0


@dataclass(frozen=True)
class BuildResult:
    """Summary of a finished catalog build."""

    path_count: int
    endpoint_count: int
    removed_count: int
    products: Tuple[str, ...]
    unresolved_refs: int
    spec_file: str
    products_file: str
    manifest_file: str


# ── $ref resolution ──────────────────────────────────────────────────────


def _unescape_pointer(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def lookup_pointer(root: Any, ref: str) -> Any:
    """Follow a local JSON pointer (``#/components/schemas/X``) in *root*."""
    node = root
    for part in ref[2:].split("/"):
        if not isinstance(node, dict):
            return None
        node = node.get(_unescape_pointer(part))
    return node


def resolve_refs(obj: Any, root: Dict[str, Any], seen: FrozenSet[str] = frozenset()) -> Any:
    """Return a copy of *obj* with local ``$ref`` pointers inlined.

    A reference that reappears inside its own expansion is replaced by
    ``{"$circular": ref}``.  Non-local references are left as they are.
    """
    if isinstance(obj, list):
        return [resolve_refs(item, root, seen) for item in obj]
    if not isinstance(obj, dict):
        return obj

    ref = obj.get("$ref")
    if isinstance(ref, str) and ref.startswith("#/"):
        if ref in seen:
            return {"$circular": ref}
        return resolve_refs(lookup_pointer(root, ref), root, seen | {ref})

    return {key: resolve_refs(value, root, seen) for key, value in obj.items()}


def count_refs(obj: Any) -> int:
    """Count dict nodes that still carry a ``$ref`` key."""
    if isinstance(obj, list):
        return sum(count_refs(item) for item in obj)
    if not isinstance(obj, dict):
        return 0
    own = 1 if "$ref" in obj else 0
    return own + sum(count_refs(value) for value in obj.values())


# ── Reduction ────────────────────────────────────────────────────────────


def extract_product(path: str) -> Optional[str]:
    """``/api/v2/logs/events/search`` → ``"logs"``."""
    match = _PRODUCT_RE.search(path)
    return match.group(1) if match else None


def _tags_with_product(tags: Optional[List[str]], product: Optional[str]) -> List[str]:
    result = list(tags or [])
    if product and not any(t.lower() == product.lower() for t in result):
        result.insert(0, product)
    return result


def process_spec(spec: Dict[str, Any]) -> ProcessedSpec:
    """Filter one OpenAPI description down to allowed, resolved operations."""
    out = ProcessedSpec()

    for path, path_item in (spec.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue

        methods: Dict[str, Any] = {}
        for method in HTTP_METHODS:
            op = path_item.get(method)
            if not isinstance(op, dict):
                continue

            if not is_allowed_at_catalog_time(method, path):
                out.removed_count += 1
                logger.debug("Dropping disallowed operation %s %s", method.upper(), path)
                continue

            product = extract_product(path)
            methods[method] = {
                "summary": op.get("summary"),
                "description": op.get("description"),
                "tags": _tags_with_product(op.get("tags"), product),
                "parameters": resolve_refs(op.get("parameters"), spec),
                "requestBody": resolve_refs(op.get("requestBody"), spec),
                "responses": resolve_refs(op.get("responses"), spec),
            }
            out.endpoint_count += 1
            if product:
                out.products[product] += 1

        if methods:
            out.paths[path] = methods

    return out


# ── Fetching ─────────────────────────────────────────────────────────────


async def fetch_spec(client: httpx.AsyncClient, url: str, label: str) -> FetchResult:
    """Download and parse one upstream YAML description."""
    logger.info("Fetching %s spec from: %s", label, url)
    try:
        resp = await client.get(url)
    except httpx.HTTPError as exc:
        raise CatalogBuildError(f"Failed to fetch {label} spec: {exc}") from exc
    if not resp.is_success:
        raise CatalogBuildError(f"Failed to fetch {label} spec: {resp.status_code}")

    text = resp.text
    header = resp.headers.get("content-length")
    content_length = int(header) if header and header.isdigit() else len(text)

    try:
        spec = yaml.load(text, Loader=_YAML_LOADER)
    except yaml.YAMLError as exc:
        raise CatalogBuildError(f"Failed to parse {label} spec: {exc}") from exc
    if not isinstance(spec, dict):
        raise CatalogBuildError(f"{label} spec is not a mapping")
    return FetchResult(spec=spec, content_length=content_length)


def _write_json(path: str, payload: Any, indent: Optional[int] = 2) -> int:
    """Write *payload* atomically and return the number of characters written."""
    text = json.dumps(payload, indent=indent)
    fd, tmp_path = tempfile.mkstemp(
        dir=os.path.dirname(os.path.abspath(path)),
        prefix=f".{os.path.basename(path)}_",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up temp file on failure
        with contextlib.suppress(OSError):
            os.unlink(tmp_path)
        raise
    return len(text)


# ── Public API ───────────────────────────────────────────────────────────


async def build_catalog(
    data_dir: str,
    client: Optional[httpx.AsyncClient] = None,
    *,
    timeout: float = UPSTREAM_FETCH_TIMEOUT,
) -> BuildResult:
    """Fetch both upstream descriptions and write the reduced catalog.

    Raises:
        CatalogBuildError: If either description cannot be fetched or parsed.
    """
    own_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        v1_result, v2_result = await asyncio.gather(
            fetch_spec(client, SPEC_URLS["v1"], "v1"),
            fetch_spec(client, SPEC_URLS["v2"], "v2"),
        )
    finally:
        if own_client:
            await client.aclose()

    logger.info(
        "v1: %d paths, v2: %d paths",
        len(v1_result.spec.get("paths") or {}),
        len(v2_result.spec.get("paths") or {}),
    )

    v1 = process_spec(v1_result.spec)
    v2 = process_spec(v2_result.spec)

    # Paths are already namespaced /api/v1/... and /api/v2/...
    merged_paths = {**v1.paths, **v2.paths}
    merged_products = v1.products + v2.products
    total_endpoints = v1.endpoint_count + v2.endpoint_count
    total_removed = v1.removed_count + v2.removed_count

    logger.info("Merged: %d paths, %d endpoints", len(merged_paths), total_endpoints)
    logger.info("Removed %d disallowed write endpoints", total_removed)

    os.makedirs(data_dir, exist_ok=True)

    catalog = {"paths": merged_paths}
    spec_file = os.path.join(data_dir, CATALOG_FILE)
    size = _write_json(spec_file, catalog)
    logger.info("Wrote %s (%d KB)", spec_file, size // 1024)

    unresolved = count_refs(catalog)
    if unresolved:
        logger.warning("%d unresolved $ref(s) remain in %s", unresolved, CATALOG_FILE)
    else:
        logger.info("No unresolved $refs remain")

    products = tuple(name for name, _ in merged_products.most_common())
    products_file = os.path.join(data_dir, PRODUCTS_FILE)
    _write_json(products_file, list(products))
    logger.info("Wrote %s (%d products)", products_file, len(products))

    manifest_file = write_manifest(
        data_dir,
        BuildManifest(
            policy_hash=policy_fingerprint(),
            v1_content_length=v1_result.content_length,
            v2_content_length=v2_result.content_length,
        ),
    )
    logger.info("Wrote %s", manifest_file)

    return BuildResult(
        path_count=len(merged_paths),
        endpoint_count=total_endpoints,
        removed_count=total_removed,
        products=products,
        unresolved_refs=unresolved,
        spec_file=spec_file,
        products_file=products_file,
        manifest_file=manifest_file,
    )


async def ensure_catalog(
    data_dir: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """Rebuild the catalog if it is stale.

    Returns the staleness reason when a rebuild happened, else ``None``.
    """
    reason = await check_staleness(data_dir, client)
    if reason is None:
        logger.debug("API catalog in %s is fresh.", data_dir)
        return None

    logger.info("Rebuilding API catalog: %s", reason)
    await build_catalog(data_dir, client)
    return reason
