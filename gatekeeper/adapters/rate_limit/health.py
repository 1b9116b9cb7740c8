"""Cached reachability verdict for the distributed backend.

The first ``is_available()`` call pings Redis once and caches the answer.
Failures reported by the limiter flip the verdict with ``mark_unavailable()``
without a probe. While unavailable, a single caller re-probes once the
re-probe interval has elapsed; everyone else keeps reading the cached value.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import redis

from gatekeeper.adapters.rate_limit.base import HealthState
from gatekeeper.adapters.rate_limit.connection import RedisConnection

logger = logging.getLogger(__name__)


class RedisHealthMonitor:
    """Decides whether the Redis token bucket may be consulted.

    Args:
        connection: Shared Redis client owner.
        reprobe_interval_seconds: Delay before retrying an unavailable backend.
            0 keeps the backend unavailable for the rest of the process.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        connection: RedisConnection,
        *,
        reprobe_interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if reprobe_interval_seconds < 0:
            raise ValueError("reprobe_interval_seconds must be >= 0")

        self._connection = connection
        self._reprobe_interval = reprobe_interval_seconds
        self._clock = clock
        self._probe_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._available = False
        self._checked = False
        self._unavailable_since: float | None = None
        self._failures = 0

    def snapshot(self) -> HealthState:
        """Return the cached state without probing."""
        with self._state_lock:
            return HealthState(available=self._available, checked=self._checked)

    def is_available(self) -> bool:
        if not self._connection.is_configured:
            with self._state_lock:
                first = not self._checked
                self._checked = True
            if first:
                logger.info("redis.not_configured", extra={"mode": "local"})
            return False

        if not self._checked:
            with self._probe_lock:
                if not self._checked:
                    self._probe()
            return self._available

        if self._available or not self._reprobe_due():
            return self._available

        # Only one thread re-probes; the rest must not wait on the ping.
        if self._probe_lock.acquire(blocking=False):
            try:
                if not self._available and self._reprobe_due():
                    self._probe()
            finally:
                self._probe_lock.release()
        return self._available

    def mark_unavailable(self) -> None:
        """Route subsequent calls to the fallback without probing."""
        with self._state_lock:
            was_available = self._available
            self._failures += 1
            self._unavailable_since = self._clock()
            self._available = False
            self._checked = True
        if was_available:
            logger.warning(
                "redis.marked_unavailable",
                extra={
                    "endpoint": self._connection.endpoint,
                    "reprobe_in_s": self._reprobe_interval or None,
                },
            )

    def _reprobe_due(self) -> bool:
        with self._state_lock:
            since = self._unavailable_since
        if not self._reprobe_interval or since is None:
            return False
        return self._clock() - since >= self._reprobe_interval

    def _probe(self) -> None:
        with self._state_lock:
            recovering = self._checked
            failures_before = self._failures

        try:
            healthy = bool(self._connection.get_client().ping())
        except (redis.RedisError, OSError) as exc:
            healthy = False
            logger.warning(
                "redis.probe_failed",
                extra={
                    "endpoint": self._connection.endpoint,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )

        with self._state_lock:
            # A failure reported while the ping was in flight wins over its answer.
            if healthy and self._failures != failures_before:
                return
            self._available = healthy
            self._checked = True
            self._unavailable_since = None if healthy else self._clock()

        if healthy:
            logger.info(
                "redis.recovered" if recovering else "redis.available",
                extra={"endpoint": self._connection.endpoint, "mode": "distributed"},
            )
