"""File logging for the server and the catalog commands.

Everything goes to one timestamped file under :data:`LOG_DIR`.  Nothing is
written to stdout, which the stdio transport owns for MCP framing.  The
Datadog keys are scrubbed from every record by :data:`secret_redaction_filter`.
"""

import logging
import logging.config
import os
import re
import sys
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Optional, Set, Tuple  # noqa: UP035

from datadog_api_mcp.constants import DEFAULT_LOG_LEVEL, LOG_DIR, LOG_LEVELS

_REDACTED = "***REDACTED***"

# Shortest value worth scrubbing; anything shorter would mangle ordinary text.
_MIN_SECRET_LEN = 4


class SecretRedactionFilter(logging.Filter):
    """Replace registered secret values with ``***REDACTED***``.

    Both the message template and string arguments are scrubbed, so a key
    echoed back inside an API error body is caught as well.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: Set[str] = set()
        self._pattern: Optional[re.Pattern] = None

    def register(self, value: Optional[str]) -> None:
        if not value or len(value) < _MIN_SECRET_LEN or value in self._secrets:
            return
        self._secrets.add(value)
        # Longest first so a secret containing another is masked whole.
        alternatives = sorted(self._secrets, key=len, reverse=True)
        self._pattern = re.compile("|".join(map(re.escape, alternatives)))

    def redact(self, text: str) -> str:
        return text if self._pattern is None else self._pattern.sub(_REDACTED, text)

    def _scrub(self, value: Any) -> Any:
        return self.redact(value) if isinstance(value, str) else value

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True
        record.msg = self._scrub(record.msg)
        if isinstance(record.args, Mapping):
            record.args = {key: self._scrub(val) for key, val in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(self._scrub(arg) for arg in record.args)
        return True


secret_redaction_filter = SecretRedactionFilter()

# Loggers that follow the requested level.
_APP_LOGGERS = (
    "datadog_api_mcp",
    "mcp",
    "uvicorn",
    "uvicorn.error",
    "starlette",
)

# Chatty loggers held at WARNING unless debugging (httpx logs every URL at INFO).
_QUIET_LOGGERS = ("httpx", "uvicorn.access")

_FILE_FORMAT = "%(asctime)s - %(name)25s:%(lineno)-4d - %(levelname)-7s - %(message)s"


def build_log_config(log_fpath: str, level: str) -> Dict[str, Any]:
    """Return the ``dictConfig`` mapping for a file log at *level*."""
    debugging = level == "DEBUG"

    def _logger(lvl: str) -> Dict[str, Any]:
        return {"handlers": ["file_handler"], "propagate": False, "level": lvl}

    loggers = {name: _logger(level) for name in _APP_LOGGERS}
    loggers.update({name: _logger("INFO" if debugging else "WARNING") for name in _QUIET_LOGGERS})

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"redact_secrets": {"()": lambda: secret_redaction_filter}},
        "formatters": {
            "file": {"format": _FILE_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "file_handler": {
                "class": "logging.FileHandler",
                "level": "DEBUG",
                "formatter": "file",
                "filters": ["redact_secrets"],
                "filename": log_fpath,
                "encoding": "utf-8",
            },
        },
        "loggers": loggers,
        "root": {"handlers": ["file_handler"], "level": level if debugging else "WARNING"},
    }


def setup_logging(log_lvl_str: str, *, quiet: bool = False) -> Tuple[str, str]:
    """Configure file logging and return ``(log_file_path, level)``.

    An unknown level falls back to ``info``.  If the log file cannot be
    opened, records go to stderr instead so nothing reaches stdout.
    """
    level = (log_lvl_str or "").lower()
    if level not in LOG_LEVELS:
        if not quiet:
            print(f"Warning: invalid log level '{log_lvl_str}'. Using 'info'.", file=sys.stderr)
        level = DEFAULT_LOG_LEVEL
    level = level.upper()

    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_fpath = os.path.join(LOG_DIR, f"datadog_mcp_{ts}_{level}.log")

    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        logging.config.dictConfig(build_log_config(log_fpath, level))
    except (OSError, ValueError) as exc:
        print(f"Error applying logging configuration: {exc}", file=sys.stderr)
        handler = logging.StreamHandler(sys.stderr)
        handler.addFilter(secret_redaction_filter)
        logging.basicConfig(level=logging.WARNING, handlers=[handler], force=True)
        return "<stderr>", level

    if not quiet:
        print(f"Logging initialized. File log level: {level}, log file: {log_fpath}", file=sys.stderr)
    return log_fpath, level
