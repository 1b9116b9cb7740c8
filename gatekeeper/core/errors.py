"""Application-level exception types.

This module defines domain errors used across the limiter adapters, enabling
consistent error handling, logging, and API responses.

Only failures talking to the distributed backend are modelled here. A denied
request is a normal decision, not an error, and a missing Redis configuration
simply selects the local limiter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    code: str
    message: str
    key: str
    attempts: int
    error_type: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class DistributedBackendError(AppError):
    """Raised when the shared Redis store cannot produce a decision.

    Callers treat every subclass the same way: mark the backend unavailable
    and decide locally.
    """


class BackendUnreachableError(DistributedBackendError):
    """Redis timed out, refused the connection or rejected authentication."""


class BackendProtocolError(DistributedBackendError):
    """Redis answered, but the reply or the stored bucket state is malformed."""


class BackendContentionError(DistributedBackendError):
    """The compare-and-swap loop lost every attempt to concurrent writers."""
