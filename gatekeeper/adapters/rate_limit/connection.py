"""Lazily created, shared Redis client.

One ``redis.Redis`` instance (and its connection pool) serves every limiter
call in the process. It is built on first use and released by ``close()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from gatekeeper.core.config import RedisSettings

logger = logging.getLogger(__name__)


def _default_factory(cfg: RedisSettings) -> redis.Redis:
    return redis.Redis(
        host=cfg.host,
        port=cfg.port or 6379,
        db=cfg.db,
        password=cfg.password,
        socket_connect_timeout=cfg.connect_timeout_seconds,
        socket_timeout=cfg.connect_timeout_seconds,
        # Single attempt per command: the socket timeout bounds every call.
        retry=Retry(NoBackoff(), 0),
    )


class RedisConnection:
    """Owner of the process-wide Redis client.

    Args:
        redis_settings: Connection settings.
        client_factory: Builds the client; tests pass a fake.
    """

    def __init__(
        self,
        redis_settings: RedisSettings,
        client_factory: Callable[[RedisSettings], redis.Redis] = _default_factory,
    ) -> None:
        self._settings = redis_settings
        self._factory = client_factory
        self._client: redis.Redis | None = None
        self._lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return self._settings.is_configured

    @property
    def endpoint(self) -> str:
        return f"{self._settings.host}:{self._settings.port}"

    def get_client(self) -> redis.Redis:
        """Return the shared client, creating it on first call."""
        client = self._client
        if client is not None:
            return client

        with self._lock:
            if self._client is None:
                self._client = self._factory(self._settings)
                logger.info("redis.client_created", extra={"endpoint": self.endpoint})
            return self._client

    def close(self) -> None:
        """Release the client and its pooled connections."""
        with self._lock:
            client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except redis.RedisError as exc:
            logger.warning("redis.close_failed", extra={"error_msg": str(exc)})
