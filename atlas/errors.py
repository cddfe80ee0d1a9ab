"""
Application errors.

Only failures that must reach a caller live here. Tool, parsing and
authorization problems are converted to text inside the agents and never
surface as exceptions.
"""

from __future__ import annotations


class AtlasError(Exception):
    """Base class for errors raised by the Atlas package."""


class ReasoningServiceError(AtlasError):
    """The reasoning service answered with a non-2xx status."""

    def __init__(self, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Reasoning service error {status_code}: {message}")


class QueueLockTimeoutError(AtlasError):
    """The turn queue lock could not be acquired within the configured wait."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire the turn queue lock for {operation} "
            f"within {timeout_seconds:g}s"
        )


class ConnectorHTTPError(AtlasError):
    """A knowledge-source API answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}")
