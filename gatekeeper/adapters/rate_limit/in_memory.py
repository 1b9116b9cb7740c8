"""In-memory fixed-window counter used as the local fallback.

Notes:
- Per-process only: with N instances in fallback the aggregate limit becomes
  N times the configured limit.
- Thread-safe: the window reset and the increment share one lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from gatekeeper.adapters.rate_limit.base import AbstractFallbackLimiter

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    window_start: float
    count: int


class LocalFixedWindowCounter(AbstractFallbackLimiter):
    """Counts requests seen by this process within a fixed window.

    The window starts at the first request after the previous one expired, not
    on wall-clock boundaries. Every call increments the counter; a call is
    admitted when the count before it was below ``limit``.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the counter.

        Args:
            limit: Requests admitted per window.
            window_seconds: Window length in seconds.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If limit or window_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = _WindowState(window_start=clock(), count=0)

    def try_consume(self) -> bool:
        with self._lock:
            now = self._clock()
            if now - self._state.window_start >= self._window_seconds:
                self._state = _WindowState(window_start=now, count=0)
                logger.debug("local_limiter.window_reset")

            previous = self._state.count
            self._state.count = previous + 1
            return previous < self._limit

    def snapshot(self) -> tuple[int, float]:
        """Return ``(count, window_start)`` for diagnostics."""
        with self._lock:
            return self._state.count, self._state.window_start
