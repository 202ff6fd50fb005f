"""Configuration loading and validation."""

from datadog_api_mcp.config.loader import load_app_config
from datadog_api_mcp.config.schema import AppConfig

__all__ = ["AppConfig", "load_app_config"]
