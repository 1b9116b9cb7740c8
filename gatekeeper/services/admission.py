"""Admission controller: the single per-request rate limiting decision.

Routing:
1. Exempt path prefixes are admitted with ``BYPASSED``.
2. While Redis is healthy the shared token bucket decides.
3. A Redis failure marks the backend unavailable and the same request is
   decided by the local counter.
4. While Redis is unavailable the local counter decides.

``admit()`` never raises. Anything unexpected is logged and the request is
admitted: availability of the protected service wins over strict limiting.
"""

from __future__ import annotations

import logging
from typing import Iterable

from gatekeeper.adapters.rate_limit.base import (
    AbstractFallbackLimiter,
    AbstractTokenBucket,
    BucketConfiguration,
    DecisionReason,
    RateLimitDecision,
)
from gatekeeper.adapters.rate_limit.connection import RedisConnection
from gatekeeper.adapters.rate_limit.health import RedisHealthMonitor
from gatekeeper.adapters.rate_limit.in_memory import LocalFixedWindowCounter
from gatekeeper.adapters.rate_limit.redis_bucket import RedisTokenBucket
from gatekeeper.core.config import Settings
from gatekeeper.core.errors import DistributedBackendError

logger = logging.getLogger(__name__)


class AdmissionController:
    """Chooses between the distributed bucket and the local counter.

    Args:
        health: Cached Redis reachability verdict.
        bucket: Shared token bucket.
        local: Process-local fallback limiter.
        bucket_key: Limiter identity shared by every instance.
        exempt_prefixes: Path prefixes that are never limited.
        connection: Redis client owner released by ``close()``, if any.
    """

    def __init__(
        self,
        *,
        health: RedisHealthMonitor,
        bucket: AbstractTokenBucket,
        local: AbstractFallbackLimiter,
        bucket_key: str = "global",
        exempt_prefixes: Iterable[str] = (),
        connection: RedisConnection | None = None,
    ) -> None:
        self._health = health
        self._bucket = bucket
        self._local = local
        self._bucket_key = bucket_key
        self._exempt_prefixes = tuple(p for p in exempt_prefixes if p)
        self._connection = connection

    @property
    def health(self) -> RedisHealthMonitor:
        return self._health

    @property
    def mode(self) -> str:
        """``distributed`` or ``local`` based on the cached verdict only."""
        return "distributed" if self._health.snapshot().available else "local"

    def is_exempt(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._exempt_prefixes)

    def admit(self, path: str) -> RateLimitDecision:
        """Decide whether a request for ``path`` may proceed."""
        try:
            if self.is_exempt(path):
                return RateLimitDecision(allowed=True, reason=DecisionReason.BYPASSED)

            if self._health.is_available():
                try:
                    allowed = self._bucket.try_consume(self._bucket_key, 1)
                except DistributedBackendError as exc:
                    logger.warning(
                        "rate_limit.distributed_failed",
                        extra={
                            "error_code": exc.code,
                            "error_message": exc.message,
                            "fallback": "local",
                        },
                    )
                    self._health.mark_unavailable()
                else:
                    return self._decision(allowed, DecisionReason.DISTRIBUTED_LIMIT)

            return self._decision(self._local.try_consume(), DecisionReason.LOCAL_LIMIT)
        except Exception:
            logger.exception("rate_limit.unexpected_error", extra={"path": path, "fail_open": True})
            return RateLimitDecision(allowed=True, reason=DecisionReason.OK)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()

    @staticmethod
    def _decision(allowed: bool, denial: DecisionReason) -> RateLimitDecision:
        if allowed:
            return RateLimitDecision(allowed=True, reason=DecisionReason.OK)
        return RateLimitDecision(allowed=False, reason=denial)


def build_admission_controller(
    app_settings: Settings,
    *,
    connection: RedisConnection | None = None,
) -> AdmissionController:
    """Wire an admission controller from settings.

    Args:
        app_settings: Resolved application settings.
        connection: Optional pre-built Redis connection (tests inject fakes).

    Returns:
        A controller owning its Redis connection.
    """

    rl = app_settings.rate_limit
    connection = connection or RedisConnection(app_settings.redis)

    bucket = RedisTokenBucket(
        connection,
        BucketConfiguration(
            capacity=rl.capacity,
            refill_tokens=rl.refill_tokens,
            refill_interval_seconds=rl.refill_interval_seconds,
        ),
        idle_ttl_seconds=rl.idle_ttl_seconds,
        key_prefix=rl.key_prefix,
        max_cas_retries=rl.max_cas_retries,
    )
    local = LocalFixedWindowCounter(limit=rl.local_limit, window_seconds=rl.local_window_seconds)
    health = RedisHealthMonitor(connection, reprobe_interval_seconds=rl.reprobe_interval_seconds)

    logger.info(
        "rate_limit.configured",
        extra={
            "redis_configured": connection.is_configured,
            "capacity": rl.capacity,
            "refill_tokens": rl.refill_tokens,
            "refill_interval_s": rl.refill_interval_seconds,
            "local_limit": rl.local_limit,
            "local_window_s": rl.local_window_seconds,
        },
    )
    return AdmissionController(
        health=health,
        bucket=bucket,
        local=local,
        bucket_key=rl.bucket_key,
        exempt_prefixes=rl.exempt_prefixes,
        connection=connection,
    )
