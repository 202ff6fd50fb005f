"""Execution of agent-authored Python snippets.

A snippet is Python source that defines an entry point named ``run``::

    async def run():
        return await datadog.request("GET", "/api/v1/monitor")

It is compiled and executed in a fresh namespace that contains exactly
one bound name (``spec`` for the search tool, ``datadog`` for the execute
tool) and a reduced builtins table.  ``run`` is then called, and awaited
if it is a coroutine function.

Before compiling, the source is scanned and rejected if it touches a
private (``_``-prefixed) attribute or one of the frame and code
introspection attributes.  Together with :class:`SnippetClient`, which
exposes nothing but ``request``, this keeps the gateway's credentials and
its HTTP client out of reach: every call a snippet makes goes through
the write allowlist.  Resource limits beyond the wall-clock timeout are
not enforced.
"""

from __future__ import annotations

import ast
import asyncio
import builtins
import inspect
import logging
import types
from typing import Any, Dict, Optional

from datadog_api_mcp.constants import DEFAULT_SNIPPET_TIMEOUT, SNIPPET_ENTRYPOINT
from datadog_api_mcp.errors import (
    DatadogMCPError,
    SnippetRuntimeError,
    SnippetSyntaxError,
    SnippetTimeoutError,
)
from datadog_api_mcp.gateway import DatadogGateway

logger = logging.getLogger(__name__)

_SAFE_BUILTINS = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter",
    "float", "frozenset", "int", "isinstance", "issubclass", "iter", "len",
    "list", "map", "max", "min", "next", "range", "repr", "reversed",
    "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "Exception", "ValueError", "KeyError", "TypeError", "IndexError",
    "AttributeError", "RuntimeError", "StopIteration", "LookupError",
)  # fmt: skip

ALLOWED_IMPORTS = frozenset(
    {"json", "re", "math", "datetime", "collections", "itertools", "statistics"}
)

# Attributes that lead from ordinary objects back to frames, code objects
# or arbitrary attribute lookup.
BLOCKED_ATTRIBUTES = frozenset(
    {
        "gi_frame", "gi_code", "gi_yieldfrom",
        "cr_frame", "cr_code", "cr_await", "cr_origin",
        "ag_frame", "ag_code", "ag_await",
        "f_back", "f_builtins", "f_code", "f_globals", "f_locals", "f_trace",
        "tb_frame", "tb_next",
        "format", "format_map", "mro",
    }
)  # fmt: skip


def is_blocked_attribute(name: str) -> bool:
    return name.startswith("_") or name in BLOCKED_ATTRIBUTES


class SnippetClient:
    """The ``datadog`` object handed to execute snippets.

    Only :meth:`request` is reachable; the gateway itself sits behind a
    private attribute, which snippets cannot name.
    """

    __slots__ = ("_gateway",)

    def __init__(self, gateway: DatadogGateway) -> None:
        self._gateway = gateway

    async def request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        return await self._gateway.request(method, path, query=query, body=body)

    def __repr__(self) -> str:
        return "<datadog client>"


# ── Namespace ────────────────────────────────────────────────────────────


def _safe_getattr(obj: Any, name: str, *default: Any) -> Any:
    if is_blocked_attribute(name):
        raise AttributeError(f"access to attribute '{name}' is not allowed in snippets")
    return getattr(obj, name, *default)


def _safe_hasattr(obj: Any, name: str) -> bool:
    return not is_blocked_attribute(name) and hasattr(obj, name)


def _module_view(module: types.ModuleType) -> types.SimpleNamespace:
    """Public, non-module members of *module* (no route to ``sys`` or ``os``)."""
    return types.SimpleNamespace(
        **{
            name: value
            for name, value in vars(module).items()
            if not name.startswith("_") and not isinstance(value, types.ModuleType)
        }
    )


def _restricted_import(
    name: str,
    globals: Optional[Dict[str, Any]] = None,
    locals: Optional[Dict[str, Any]] = None,
    fromlist: Any = (),
    level: int = 0,
) -> Any:
    if level != 0 or name.split(".")[0] not in ALLOWED_IMPORTS:
        raise ImportError(f"import of '{name}' is not allowed in snippets")
    return _module_view(builtins.__import__(name, globals, locals, fromlist, level))


def _snippet_builtins() -> Dict[str, Any]:
    table = {name: getattr(builtins, name) for name in _SAFE_BUILTINS}
    table["getattr"] = _safe_getattr
    table["hasattr"] = _safe_hasattr
    table["__import__"] = _restricted_import
    table["__build_class__"] = builtins.__build_class__
    return table


def check_source(tree: ast.AST) -> None:
    """Reject attribute access the namespace cannot otherwise prevent."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and is_blocked_attribute(node.attr):
            raise SnippetSyntaxError(
                f"Access to attribute '{node.attr}' is not allowed in snippets "
                f"(line {node.lineno})."
            )


def load_entrypoint(code: str, bindings: Dict[str, Any], filename: str = "<snippet>") -> Any:
    """Compile *code* with *bindings* in scope and return its ``run`` callable.

    Raises:
        SnippetSyntaxError: The code does not parse, touches a blocked
            attribute or defines no ``run``.
        SnippetRuntimeError: Module-level statements raised.
    """
    try:
        tree = ast.parse(code, filename, "exec")
    except (SyntaxError, ValueError) as exc:
        raise SnippetSyntaxError(f"Snippet has a syntax error: {exc}") from exc
    check_source(tree)
    compiled = compile(tree, filename, "exec")

    namespace: Dict[str, Any] = {"__builtins__": _snippet_builtins(), "__name__": "__snippet__"}
    namespace.update(bindings)
    try:
        exec(compiled, namespace)  # nosec B102 - agent snippets run by design
    except Exception as exc:
        raise SnippetRuntimeError(str(exc), orig_exc=exc) from exc

    entry = namespace.get(SNIPPET_ENTRYPOINT)
    if not callable(entry):
        raise SnippetSyntaxError(
            f"Snippet must define a function named '{SNIPPET_ENTRYPOINT}', "
            f"e.g. 'async def {SNIPPET_ENTRYPOINT}(): ...'"
        )
    return entry


async def run_snippet(
    code: str,
    bindings: Dict[str, Any],
    *,
    timeout: float = DEFAULT_SNIPPET_TIMEOUT,
) -> Any:
    """Execute *code* and return whatever its ``run`` returns.

    Errors raised by this package (policy denials, Datadog API errors)
    propagate unchanged; any other exception is wrapped in
    :class:`SnippetRuntimeError`.
    """
    entry = load_entrypoint(code, bindings)
    try:
        result = entry()
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SnippetTimeoutError(timeout) from exc
    except DatadogMCPError:
        raise
    except Exception as exc:
        logger.debug("Snippet raised %s: %s", type(exc).__name__, exc)
        raise SnippetRuntimeError(str(exc), orig_exc=exc) from exc
    return result


async def execute_search(
    code: str, spec: Dict[str, Any], *, timeout: float = DEFAULT_SNIPPET_TIMEOUT
) -> Any:
    """Run a search snippet with the reduced catalog bound as ``spec``."""
    return await run_snippet(code, {"spec": spec}, timeout=timeout)


async def execute_code(
    code: str, gateway: DatadogGateway, *, timeout: float = DEFAULT_SNIPPET_TIMEOUT
) -> Any:
    """Run an API snippet with *gateway* bound as ``datadog`` (via :class:`SnippetClient`)."""
    return await run_snippet(code, {"datadog": SnippetClient(gateway)}, timeout=timeout)
