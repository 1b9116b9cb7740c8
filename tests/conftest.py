"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and leaves Redis unconfigured so
the default app runs in local-fallback mode.
"""

import os
import threading

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("REDIS_HOST", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import redis

from gatekeeper.adapters.rate_limit.connection import RedisConnection
from gatekeeper.core.config import RedisSettings


class FakeRedis:
    """In-process stand-in for the Redis commands the limiter uses.

    Keys carry a version that EXEC compares against the versions seen at
    WATCH time, which is the optimistic-locking contract of real Redis.

    Attributes:
        fail_with: Raised from WATCH to simulate transport failures.
        ping_error: Raised from PING.
        conflicts_to_inject: Number of upcoming EXECs that find their watched
            key modified by "another client".
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls_ms: dict[str, int | None] = {}
        self.versions: dict[str, int] = {}
        self.lock = threading.Lock()
        self.fail_with: Exception | None = None
        self.ping_error: Exception | None = None
        self.conflicts_to_inject = 0
        self.ping_calls = 0
        self.exec_calls = 0
        self.closed = False

    def ping(self) -> bool:
        self.ping_calls += 1
        if self.ping_error is not None:
            raise self.ping_error
        return True

    def get(self, key: str) -> bytes | None:
        with self.lock:
            return self.data.get(key)

    def set(self, key: str, value: bytes | str, px: int | None = None) -> bool:
        with self.lock:
            self._write(key, value, px)
        return True

    def evict(self, key: str) -> None:
        """Drop a key as if its TTL had expired."""
        with self.lock:
            self.data.pop(key, None)
            self.ttls_ms.pop(key, None)
            self.versions[key] = self.versions.get(key, 0) + 1

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)

    def close(self) -> None:
        self.closed = True

    def _write(self, key: str, value: bytes | str, px: int | None) -> None:
        self.data[key] = value.encode() if isinstance(value, str) else value
        self.ttls_ms[key] = px
        self.versions[key] = self.versions.get(key, 0) + 1


class FakePipeline:
    def __init__(self, store: FakeRedis) -> None:
        self._store = store
        self._watched: dict[str, int] = {}
        self._queued: list[tuple[str, bytes, int | None]] = []

    def __enter__(self) -> "FakePipeline":
        return self

    def __exit__(self, *exc_info) -> None:
        self.reset()

    def watch(self, *keys: str) -> None:
        if self._store.fail_with is not None:
            raise self._store.fail_with
        with self._store.lock:
            for key in keys:
                self._watched[key] = self._store.versions.get(key, 0)

    def get(self, key: str) -> bytes | None:
        return self._store.get(key)

    def multi(self) -> None:
        pass

    def set(self, key: str, value: bytes, px: int | None = None) -> "FakePipeline":
        self._queued.append((key, value, px))
        return self

    def execute(self) -> list[bool]:
        store = self._store
        try:
            with store.lock:
                store.exec_calls += 1
                if store.conflicts_to_inject > 0:
                    store.conflicts_to_inject -= 1
                    for key in self._watched:
                        store.versions[key] = store.versions.get(key, 0) + 1
                for key, seen in self._watched.items():
                    if store.versions.get(key, 0) != seen:
                        raise redis.WatchError("Watched variable changed.")
                for key, value, px in self._queued:
                    store._write(key, value, px)
                return [True] * len(self._queued)
        finally:
            self.reset()

    def reset(self) -> None:
        self._watched.clear()
        self._queued.clear()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_settings() -> RedisSettings:
    return RedisSettings(host="redis.test", port=6379)


@pytest.fixture
def redis_connection(fake_redis: FakeRedis, redis_settings: RedisSettings) -> RedisConnection:
    return RedisConnection(redis_settings, client_factory=lambda _cfg: fake_redis)
