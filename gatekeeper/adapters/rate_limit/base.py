"""Rate limiter interfaces and value types.

The admission controller depends on these abstractions (not the concrete
Redis or in-memory implementations) so either side can be swapped or faked.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass


class DecisionReason(str, enum.Enum):
    """Why a request was admitted or denied."""

    OK = "OK"
    DISTRIBUTED_LIMIT = "DISTRIBUTED_LIMIT"
    LOCAL_LIMIT = "LOCAL_LIMIT"
    BYPASSED = "BYPASSED"


_DENIAL_MESSAGES = {
    DecisionReason.DISTRIBUTED_LIMIT: "Request rate too high, please retry later (global limit reached).",
    DecisionReason.LOCAL_LIMIT: "Request rate too high, please retry later (instance limit reached).",
}


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check.

    Attributes:
        allowed: Whether the request may proceed.
        reason: Which path produced the verdict.
    """

    allowed: bool
    reason: DecisionReason

    @property
    def message(self) -> str:
        """Human-readable text suitable for a 429 response body."""
        if self.allowed:
            return "Request admitted."
        return _DENIAL_MESSAGES.get(self.reason, "Request rate too high, please retry later.")


@dataclass(frozen=True)
class BucketConfiguration:
    """Token bucket shape: burst ceiling and refill rate.

    Attributes:
        capacity: Maximum tokens the bucket can hold.
        refill_tokens: Tokens added per elapsed refill interval.
        refill_interval_seconds: Length of one refill interval.
    """

    capacity: int
    refill_tokens: int
    refill_interval_seconds: float

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError("capacity must be >= 1")
        if self.refill_tokens < 1:
            raise ValueError("refill_tokens must be >= 1")
        if self.refill_interval_seconds <= 0:
            raise ValueError("refill_interval_seconds must be > 0")

    @property
    def refill_interval_ms(self) -> int:
        return max(1, int(round(self.refill_interval_seconds * 1000)))


@dataclass(frozen=True)
class HealthState:
    """Cached verdict of the backend health monitor.

    ``checked`` stays False until the first probe has run.
    """

    available: bool
    checked: bool


class AbstractTokenBucket(ABC):
    """Shared limiter consulted while the distributed backend is healthy."""

    @abstractmethod
    def try_consume(self, key: str, cost: int = 1) -> bool:
        """Take ``cost`` tokens from the bucket identified by ``key``.

        Returns:
            True when the tokens were taken, False when the bucket is short.

        Raises:
            DistributedBackendError: If the backend could not decide.
        """
        raise NotImplementedError


class AbstractFallbackLimiter(ABC):
    """Process-local limiter used while the distributed backend is down."""

    @abstractmethod
    def try_consume(self) -> bool:
        """Count one request and report whether it fits the current window."""
        raise NotImplementedError
