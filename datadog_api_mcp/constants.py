"""Shared constants for Datadog API MCP."""

import os

SERVER_NAME = "datadog-api"
SERVER_VERSION = "0.1.0"

# Network defaults (streamable-http transport only)
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9100
STREAMABLE_HTTP_PATH = "/mcp"

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "info"
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

# Datadog
DEFAULT_DD_SITE = "datadoghq.com"
DD_REQUEST_TIMEOUT = 30.0  # seconds per outbound API call

# Upstream OpenAPI descriptions
SPEC_URLS = {
    "v1": "https://raw.githubusercontent.com/DataDog/documentation/master/data/api/v1/full_spec.yaml",
    "v2": "https://raw.githubusercontent.com/DataDog/documentation/master/data/api/v2/full_spec.yaml",
}
UPSTREAM_HEAD_TIMEOUT = 5.0  # seconds for staleness HEAD probes
UPSTREAM_FETCH_TIMEOUT = 120.0  # seconds for a full spec download

# Catalog files
DEFAULT_CATALOG_DIR = os.path.join(
    os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache")),
    "datadog-api-mcp",
    "catalog",
)
CATALOG_FILE = "spec.json"
PRODUCTS_FILE = "products.json"
MANIFEST_FILE = ".build-manifest.json"

# Snippet execution
SNIPPET_ENTRYPOINT = "run"
DEFAULT_SNIPPET_TIMEOUT = 60.0

# Response truncation
MAX_RESPONSE_TOKENS = 6_000
CHARS_PER_TOKEN = 4
MAX_RESPONSE_CHARS = MAX_RESPONSE_TOKENS * CHARS_PER_TOKEN
