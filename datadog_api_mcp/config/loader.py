"""Configuration file loading and validation.

Loads an optional YAML configuration file, expands ``${ENV_VAR}``
placeholders, applies the ``DD_*`` environment overrides and validates the
result against the Pydantic models in :mod:`schema`.

The public API is :func:`load_app_config`.
"""

import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from datadog_api_mcp.config.schema import AppConfig
from datadog_api_mcp.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Recognised config file extensions.
_YAML_EXTS = frozenset({".yaml", ".yml"})

_ENV_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

# Environment variable → (section, key) overrides, applied after the file.
ENV_OVERRIDES = {
    "DD_API_KEY": ("datadog", "api_key"),
    "DD_APP_KEY": ("datadog", "app_key"),
    "DD_SITE": ("datadog", "site"),
}

CONFIG_PATH_ENV = "DATADOG_MCP_CONFIG"


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ``${VAR}`` references in string values.

    - If the env var is not set, the placeholder is left unchanged.
    - Non-string leaves are returned as-is.
    - Dicts and lists are walked recursively.
    """
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except Exception as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    # An empty file is a valid "all defaults" config.
    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def apply_env_overrides(
    raw_data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Overlay ``DD_API_KEY``/``DD_APP_KEY``/``DD_SITE`` onto *raw_data*."""
    env = os.environ if environ is None else environ
    merged = dict(raw_data)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        sub = merged.get(section)
        sub = dict(sub) if isinstance(sub, dict) else {}
        sub[key] = value
        merged[section] = sub
        logger.debug("Config '%s.%s' overridden from $%s.", section, key, var)
    return merged


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"])
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


# ── Public API ───────────────────────────────────────────────────────────


def load_app_config(
    cfg_fpath: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load, expand, override, validate and return the app config.

    Steps:
        1. Read YAML file (skipped when no path is given)
        2. Expand ``${VAR}`` environment variable references
        3. Apply ``DD_*`` environment overrides
        4. Validate against :class:`AppConfig` (Pydantic)

    Raises:
        ConfigurationError: On file I/O errors, parse errors, or
            validation failures (all errors reported at once).
    """
    raw_data: Dict[str, Any] = {}
    if cfg_fpath is not None:
        logger.debug("Loading configuration file: %s", cfg_fpath)
        if not os.path.exists(cfg_fpath):
            raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")
        raw_data = _read_config_file(cfg_fpath)
        raw_data = expand_env_vars(raw_data)

    raw_data = apply_env_overrides(raw_data, environ)

    try:
        config = AppConfig.model_validate(raw_data)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n" f"{error_summary}"
        ) from exc

    logger.info(
        "Configuration loaded (v%s, site=%s, transport=%s, credentials=%s).",
        config.version,
        config.datadog.site,
        config.server.transport,
        "present" if config.datadog.has_credentials else "missing",
    )
    return config
