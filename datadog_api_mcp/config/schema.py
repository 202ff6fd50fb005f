"""Pydantic configuration models for Datadog API MCP.

Every section has working defaults, so an empty (or absent) config file
yields a usable :class:`AppConfig` once the Datadog keys are supplied via
environment variables.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from datadog_api_mcp.constants import (
    DD_REQUEST_TIMEOUT,
    DEFAULT_CATALOG_DIR,
    DEFAULT_DD_SITE,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    DEFAULT_SNIPPET_TIMEOUT,
    LOG_LEVELS,
    UPSTREAM_FETCH_TIMEOUT,
)


class DatadogSettings(BaseModel):
    """Credentials and endpoint for the Datadog API."""

    api_key: Optional[str] = Field(default=None, description="Datadog API key (DD_API_KEY).")
    app_key: Optional[str] = Field(
        default=None, description="Datadog application key (DD_APP_KEY)."
    )
    site: str = Field(
        default=DEFAULT_DD_SITE,
        min_length=1,
        description="Datadog site, e.g. datadoghq.eu (DD_SITE).",
    )
    request_timeout: float = Field(
        default=DD_REQUEST_TIMEOUT,
        gt=0,
        description="Per-request timeout in seconds for outbound API calls.",
    )

    @field_validator("site")
    @classmethod
    def _strip_site(cls, v: str) -> str:
        v = v.strip()
        for prefix in ("https://", "http://", "api."):
            if v.startswith(prefix):
                v = v[len(prefix) :]
        return v.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) and bool(self.app_key)


class ServerSettings(BaseModel):
    """MCP transport settings."""

    transport: Literal["stdio", "streamable-http"] = Field(
        default="stdio",
        description="MCP transport: stdio (default) or streamable-http.",
    )
    host: str = Field(default=DEFAULT_HOST)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    log_level: str = Field(
        default=DEFAULT_LOG_LEVEL,
        description="File log level, used when --log-level is not given.",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOG_LEVELS:
            raise ValueError(f"must be one of: {', '.join(LOG_LEVELS)}")
        return v


class CatalogSettings(BaseModel):
    """Location and refresh behaviour of the reduced API catalog."""

    data_dir: str = Field(
        default=DEFAULT_CATALOG_DIR,
        min_length=1,
        description="Directory holding spec.json, products.json and the build manifest.",
    )
    auto_refresh: bool = Field(
        default=True,
        description="Rebuild the catalog at startup when it is stale.",
    )
    fetch_timeout: float = Field(default=UPSTREAM_FETCH_TIMEOUT, gt=0)

    @field_validator("data_dir")
    @classmethod
    def _expand_user(cls, v: str) -> str:
        return os.path.expanduser(v)


class ExecutionSettings(BaseModel):
    """Limits for agent-authored snippets."""

    timeout: float = Field(
        default=DEFAULT_SNIPPET_TIMEOUT,
        gt=0,
        description="Wall-clock budget in seconds for one snippet.",
    )


class AppConfig(BaseModel):
    """Root configuration model."""

    version: str = Field(default="1")
    datadog: DatadogSettings = Field(default_factory=DatadogSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
