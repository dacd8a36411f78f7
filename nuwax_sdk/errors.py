"""
Exception types for nuwax-sdk.

Provides typed exceptions for:
- Engine startup (spawn failures, readiness timeouts, aborted starts)
- Dispatcher calls (HTTP status errors, transport failures, invalid bodies)
"""

from __future__ import annotations

from typing import Any, Optional


class NuwaxSDKError(Exception):
    """Base exception for all nuwax-sdk errors."""
    pass


# =============================================================================
# Engine Startup Errors
# =============================================================================


class EngineStartError(NuwaxSDKError):
    """
    Raised when an engine could not be brought to the ready state.

    The process supervisor never retries a failed start; the caller decides
    whether to try again with different options.
    """
    pass


class SpawnError(EngineStartError):
    """
    Raised when the engine binary cannot be launched.

    This includes:
    - Binary not found on PATH (or at the configured override path)
    - Binary not executable
    - Any other OS-level launch failure
    """

    def __init__(self, message: str, binary_path: Optional[str] = None):
        self.binary_path = binary_path
        super().__init__(message)


class StartupTimeoutError(EngineStartError):
    """
    Raised when the liveness probe never succeeded within the startup window.

    The spawned process has already been terminated when this is raised.

    Example:
        try:
            client, server = await create_opencode(timeout=5.0)
        except StartupTimeoutError as e:
            logger.error(f"{e.engine} at {e.binary_path} did not start")
    """

    def __init__(
        self,
        engine: str,
        binary_path: str,
        timeout: float,
        last_error: Optional[str] = None,
    ):
        self.engine = engine
        self.binary_path = binary_path
        self.timeout = timeout
        self.last_error = last_error

        message = f"Failed to start {engine} ({binary_path}) within {timeout:g}s"
        if last_error:
            message += f". Last error: {last_error}"
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"StartupTimeoutError(engine={self.engine!r}, "
            f"binary_path={self.binary_path!r}, timeout={self.timeout!r})"
        )


class StartupAbortedError(EngineStartError):
    """Raised when the engine was stopped (or aborted) before it became ready."""
    pass


class HealthTimeoutError(NuwaxSDKError):
    """Raised by wait_healthy when the endpoint never reported healthy."""

    def __init__(self, message: str, last_error: Optional[str] = None):
        self.last_error = last_error
        super().__init__(message)


# =============================================================================
# Dispatcher Errors
# =============================================================================


class ApiError(NuwaxSDKError):
    """
    Raised when an engine API call returns a non-2xx status.

    Only raised by clients created with throw_on_error=True; otherwise the
    call returns an empty result instead.

    Attributes:
        status: HTTP status code
        body: Parsed JSON error body if available, else raw text
    """

    def __init__(
        self,
        status: int,
        message: Optional[str] = None,
        body: Any = None,
        url: Optional[str] = None,
    ):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(message or f"Request failed with status {status}")

    def __repr__(self) -> str:
        return f"ApiError(status={self.status!r}, url={self.url!r})"


class TransportError(NuwaxSDKError):
    """
    Raised when the engine endpoint cannot be reached.

    Typical cause: connection refused after the engine process crashed.
    Transport errors are raised regardless of throw_on_error.
    """
    pass


class BodyValidationError(NuwaxSDKError, ValueError):
    """
    Raised when a request body does not match the operation's accepted shape.

    Unknown fields are rejected at the client boundary instead of being
    forwarded to the engine.
    """

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Invalid body for {operation}: {detail}")
