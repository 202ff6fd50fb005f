"""Custom exception classes for Datadog API MCP."""

from typing import Optional


class DatadogMCPError(Exception):
    """Base class for all custom exceptions in Datadog API MCP."""

    pass


class ConfigurationError(DatadogMCPError):
    """Raised when loading or validating the configuration file fails."""

    pass


class CatalogBuildError(DatadogMCPError):
    """Raised when the upstream API description cannot be fetched or reduced."""

    pass


class CatalogNotFoundError(DatadogMCPError):
    """Raised when the built catalog files are missing on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"API catalog not found at '{path}'. "
            "Run 'datadog-api-mcp build-catalog' to generate it."
        )


class PolicyDeniedError(DatadogMCPError):
    """
    Raised by the gateway when the write allowlist rejects a call.

    The request is never sent; this is not a network failure and must
    not be retried.
    """

    def __init__(self, method: str, path: str, allowed_writes: Optional[str] = None):
        self.method = method
        self.path = path
        message = (
            f"Blocked: {method} {path} is not in the write allowlist. "
            "Only GET/HEAD, read-only POST queries and specific "
            "notebook/dashboard operations are permitted."
        )
        if allowed_writes:
            message += f" Allowed writes: {allowed_writes}"
        super().__init__(message)


class DatadogAPIError(DatadogMCPError):
    """Raised when the Datadog API answers with a non-success status."""

    def __init__(
        self,
        status_code: int,
        body: str,
        rate_limit_reset: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        self.rate_limit_reset = rate_limit_reset

        full_msg = f"Datadog API error {status_code}: {body}"
        if status_code == 429 and rate_limit_reset:
            full_msg += f" Rate limit resets in {rate_limit_reset}s."
        super().__init__(full_msg)


class SnippetError(DatadogMCPError):
    """Base class for failures of agent-authored snippets."""

    pass


class SnippetSyntaxError(SnippetError):
    """Raised when a snippet does not compile or lacks its entry point."""

    pass


class SnippetRuntimeError(SnippetError):
    """Raised when a snippet raises while running."""

    def __init__(self, message: str, orig_exc: Optional[Exception] = None):
        self.orig_exc = orig_exc
        if orig_exc is not None:
            message = f"{message} ({type(orig_exc).__name__})"
        super().__init__(message)


class SnippetTimeoutError(SnippetError):
    """Raised when a snippet exceeds its execution time budget."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Snippet did not finish within {timeout:g}s.")


class ToolCallError(DatadogMCPError):
    """Raised by the MCP handler so the client receives an ``isError`` result."""

    pass
