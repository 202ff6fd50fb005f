"""Reduced Datadog API catalog: build, staleness checks and loading."""

from datadog_api_mcp.catalog.builder import BuildResult, build_catalog, ensure_catalog
from datadog_api_mcp.catalog.manifest import BuildManifest, check_staleness
from datadog_api_mcp.catalog.store import CatalogStore

__all__ = [
    "BuildManifest",
    "BuildResult",
    "CatalogStore",
    "build_catalog",
    "check_staleness",
    "ensure_catalog",
]
