"""OpenAPI path template matching.

A template such as ``/api/v1/notebooks/{notebook_id}`` is compared to a
concrete path segment by segment.  Parameter segments (``{name}``) match
any non-empty segment; literal segments must be equal.  There is no
variable-length wildcard, so templates never match by prefix.
"""

from __future__ import annotations

from typing import List


def split_path(path: str) -> List[str]:
    """Split *path* on ``/`` keeping empty segments (``"/a//b"`` → 4 parts)."""
    return path.split("/")


def is_param_segment(segment: str) -> bool:
    """Return ``True`` if *segment* is a ``{placeholder}``."""
    return segment.startswith("{") and segment.endswith("}")


def matches(template: str, concrete_path: str) -> bool:
    """Return ``True`` if *concrete_path* is an instance of *template*.

    >>> matches("/a/{id}/b", "/a/123/b")
    True
    >>> matches("/a/{id}/b", "/a//b")
    False
    """
    template_parts = split_path(template)
    concrete_parts = split_path(concrete_path)
    if len(template_parts) != len(concrete_parts):
        return False
    for pat, seg in zip(template_parts, concrete_parts):
        if is_param_segment(pat):
            if not seg:
                return False
        elif pat != seg:
            return False
    return True
