"""Size limiting for tool responses.

Large Datadog payloads would swamp the agent's context window, so tool
output is rendered to text and cut at :data:`MAX_RESPONSE_CHARS`.
"""

import json
import math
from typing import Any

from datadog_api_mcp.constants import (
    CHARS_PER_TOKEN,
    MAX_RESPONSE_CHARS,
    MAX_RESPONSE_TOKENS,
)

TRUNCATION_MARKER = "--- TRUNCATED ---"


def render_response(value: Any) -> str:
    """Strings pass through; everything else becomes indented JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, default=str)


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_response(value: Any) -> str:
    """Render *value* and cut it to the response budget.

    Text at or under the limit is returned unchanged.  Longer text keeps
    its first :data:`MAX_RESPONSE_CHARS` characters followed by a notice
    with the estimated token count.
    """
    text = render_response(value)
    if len(text) <= MAX_RESPONSE_CHARS:
        return text

    return (
        f"{text[:MAX_RESPONSE_CHARS]}\n\n{TRUNCATION_MARKER}\n"
        f"Response was ~{estimate_tokens(text):,} tokens "
        f"(limit: {MAX_RESPONSE_TOKENS:,}). "
        "Use more specific queries, filters or pagination to reduce the response size."
    )
