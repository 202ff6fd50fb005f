"""CLI argument parsing and main entry point.

Subcommands:

* ``datadog-api-mcp serve``: run the MCP server (stdio or streamable HTTP).
* ``datadog-api-mcp build-catalog``: fetch and reduce the upstream API specs.
* ``datadog-api-mcp check-catalog``: report whether the catalog is stale.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

import uvicorn

from datadog_api_mcp.config.loader import CONFIG_PATH_ENV, load_app_config
from datadog_api_mcp.config.schema import AppConfig
from datadog_api_mcp.constants import LOG_LEVELS, SERVER_NAME, SERVER_VERSION
from datadog_api_mcp.display.logging_config import secret_redaction_filter, setup_logging
from datadog_api_mcp.errors import CatalogBuildError, ConfigurationError

module_logger = logging.getLogger(__name__)

# Config file search order (first match wins)
_CONFIG_SEARCH_ORDER = ("config.yaml", "config.yml")


def _find_config_file() -> Optional[str]:
    """Return ``config.yaml``/``config.yml`` from the CWD, if present."""
    for name in _CONFIG_SEARCH_ORDER:
        candidate = os.path.join(os.getcwd(), name)
        if os.path.isfile(candidate):
            return candidate
    return None


def _resolve_config_path(cli_path: Optional[str]) -> Optional[str]:
    """CLI flag → ``$DATADOG_MCP_CONFIG`` → auto-detect → none (defaults)."""
    if cli_path:
        return os.path.abspath(cli_path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return os.path.abspath(env_path)
    return _find_config_file()


def _load_config_or_exit(args: argparse.Namespace) -> AppConfig:
    cfg_path = _resolve_config_path(getattr(args, "config", None))
    try:
        config = load_app_config(cfg_path)
    except ConfigurationError as exc:
        # Logging is not configured yet; report on stderr only.
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    # Command-line flags take precedence over the file.
    overrides = {}
    for key in ("transport", "host", "port"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    if overrides:
        config = config.model_copy(
            update={"server": config.server.model_copy(update=overrides)}
        )
    if getattr(args, "data_dir", None):
        config = config.model_copy(
            update={"catalog": config.catalog.model_copy(update={"data_dir": args.data_dir})}
        )

    secret_redaction_filter.register(config.datadog.api_key)
    secret_redaction_filter.register(config.datadog.app_key)
    return config


def _start(args: argparse.Namespace, *, quiet: bool = False) -> AppConfig:
    """Load the config, then set up logging from the flag or ``server.log_level``."""
    config = _load_config_or_exit(args)
    setup_logging(args.log_level or config.server.log_level, quiet=quiet)
    module_logger.info("---- %s v%s (%s) ----", SERVER_NAME, SERVER_VERSION, args.command)
    module_logger.info(
        "Configuration file path resolved to: %s",
        _resolve_config_path(getattr(args, "config", None)) or "(none, defaults)",
    )
    return config


# ── ``serve`` ────────────────────────────────────────────────────────────


async def _prepare_catalog(config: AppConfig, refresh: bool) -> None:
    """Rebuild a stale catalog; tolerate build failures if one exists."""
    from datadog_api_mcp.catalog import CatalogStore, ensure_catalog

    store = CatalogStore(config.catalog.data_dir)
    if not (refresh and config.catalog.auto_refresh):
        if not store.exists():
            module_logger.warning("No API catalog at %s and refresh disabled.", store.spec_path)
        return

    try:
        reason = await ensure_catalog(config.catalog.data_dir)
    except CatalogBuildError as exc:
        if not store.exists():
            raise
        module_logger.warning("Catalog rebuild failed, serving existing catalog: %s", exc)
        return
    if reason is not None:
        print(f"Rebuilt API catalog: {reason}", file=sys.stderr)


async def _run_server(config: AppConfig, refresh: bool) -> None:
    """Async main for the serve subcommand."""
    from datadog_api_mcp.server.app import create_http_app, run_stdio
    from datadog_api_mcp.server.tools import ServerContext

    await _prepare_catalog(config, refresh)

    if not config.datadog.has_credentials:
        print(
            "Warning: DD_API_KEY and/or DD_APP_KEY not set. "
            "The search tool will work, but execute will fail.",
            file=sys.stderr,
        )

    ctx = ServerContext.from_config(config)

    if config.server.transport == "stdio":
        await run_stdio(ctx)
        return

    uvicorn_cfg = uvicorn.Config(
        app=create_http_app(ctx),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
        log_level="warning",
    )
    module_logger.info(
        "Preparing to start Uvicorn server: http://%s:%s",
        config.server.host,
        config.server.port,
    )
    try:
        await uvicorn.Server(uvicorn_cfg).serve()
    finally:
        module_logger.info("%s has shut down or is shutting down.", SERVER_NAME)


def _cmd_serve(args: argparse.Namespace) -> None:
    config = _start(args)
    try:
        asyncio.run(_run_server(config, refresh=not args.no_refresh))
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", SERVER_NAME)
    except CatalogBuildError as exc:
        module_logger.error("Cannot start without an API catalog: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as e_fatal:
        module_logger.exception("%s encountered an uncaught fatal error: %s", SERVER_NAME, e_fatal)
        sys.exit(1)
    finally:
        module_logger.info("%s application finished.", SERVER_NAME)


# ── ``build-catalog`` / ``check-catalog`` ────────────────────────────────


def _cmd_build_catalog(args: argparse.Namespace) -> None:
    from datadog_api_mcp.catalog import build_catalog

    config = _start(args)
    try:
        result = asyncio.run(
            build_catalog(config.catalog.data_dir, timeout=config.catalog.fetch_timeout)
        )
    except CatalogBuildError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"Merged: {result.path_count} paths, {result.endpoint_count} endpoints")
    print(f"Removed {result.removed_count} disallowed write endpoints")
    if result.unresolved_refs:
        print(f"WARNING: {result.unresolved_refs} unresolved $ref(s) remain")
    print(f"Wrote {result.spec_file} ({len(result.products)} products)")


def _cmd_check_catalog(args: argparse.Namespace) -> None:
    from datadog_api_mcp.catalog import check_staleness

    config = _start(args, quiet=True)
    reason = asyncio.run(check_staleness(config.catalog.data_dir))
    if reason is None:
        print(f"API catalog at {config.catalog.data_dir} is up to date.")
        return
    print(f"API catalog is stale: {reason}")
    sys.exit(2)


# ── Parser ───────────────────────────────────────────────────────────────


def _add_common_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help=(
            f"Path to configuration file (YAML). Default: ${CONFIG_PATH_ENV}, "
            "then config.yaml/config.yml in the current directory"
        ),
    )
    sp.add_argument(
        "--data-dir",
        type=str,
        default=None,
        metavar="DIR",
        help="Directory holding the built API catalog",
    )
    sp.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=LOG_LEVELS,
        help="Set file logging level (default: server.log_level from config, else info)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with serve/build-catalog/check-catalog subcommands."""
    parser = argparse.ArgumentParser(
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # ── serve ───────────────────────────────────────────────────
    sp_serve = subparsers.add_parser("serve", help="Run the MCP server")
    sp_serve.add_argument(
        "--transport",
        type=str,
        default=None,
        choices=["stdio", "streamable-http"],
        help="MCP transport (default: from config, else stdio)",
    )
    sp_serve.add_argument("--host", type=str, default=None, help="Host for streamable-http")
    sp_serve.add_argument("--port", type=int, default=None, help="Port for streamable-http")
    sp_serve.add_argument(
        "--no-refresh",
        action="store_true",
        default=False,
        help="Do not check or rebuild a stale API catalog at startup",
    )
    _add_common_args(sp_serve)
    sp_serve.set_defaults(func=_cmd_serve)

    # ── build-catalog ───────────────────────────────────────────
    sp_build = subparsers.add_parser(
        "build-catalog",
        help="Fetch the Datadog OpenAPI specs and write the reduced catalog",
    )
    _add_common_args(sp_build)
    sp_build.set_defaults(func=_cmd_build_catalog)

    # ── check-catalog ───────────────────────────────────────────
    sp_check = subparsers.add_parser(
        "check-catalog",
        help="Exit 0 if the catalog is fresh, 2 if it needs a rebuild",
    )
    _add_common_args(sp_check)
    sp_check.set_defaults(func=_cmd_check_catalog)

    return parser


def main() -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    else:
        args.func(args)


if __name__ == "__main__":
    main()
