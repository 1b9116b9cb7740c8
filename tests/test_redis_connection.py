"""Tests for the shared Redis client owner and its default client settings."""

import socket
import time

import pytest
import redis

from gatekeeper.adapters.rate_limit.connection import RedisConnection, _default_factory
from gatekeeper.core.config import RateLimitSettings, RedisSettings, Settings
from gatekeeper.services.admission import build_admission_controller


@pytest.fixture
def silent_server():
    """A listener that completes TCP handshakes but never answers a command."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(16)
    yield server.getsockname()[1]
    server.close()


def test_default_client_does_not_retry_commands() -> None:
    client = _default_factory(RedisSettings(host="127.0.0.1", port=6379, connect_timeout_seconds=1.0))
    try:
        retry = client.connection_pool.connection_kwargs["retry"]
        assert retry._retries == 0
        assert client.connection_pool.connection_kwargs["socket_timeout"] == 1.0
        assert client.connection_pool.connection_kwargs["socket_connect_timeout"] == 1.0
    finally:
        client.close()


def test_silent_backend_does_not_block_past_timeout(silent_server: int) -> None:
    controller = build_admission_controller(
        Settings(
            redis=RedisSettings(host="127.0.0.1", port=silent_server, connect_timeout_seconds=0.5),
            rate_limit=RateLimitSettings(),
        )
    )
    try:
        start = time.monotonic()
        decision = controller.admit("/hello")
        elapsed = time.monotonic() - start
    finally:
        controller.close()

    assert decision.allowed
    assert controller.mode == "local"
    assert elapsed < 3.0


def test_client_created_once_and_released(redis_settings: RedisSettings, fake_redis) -> None:
    calls = []

    def factory(cfg: RedisSettings):
        calls.append(cfg)
        return fake_redis

    connection = RedisConnection(redis_settings, client_factory=factory)

    assert connection.get_client() is connection.get_client()
    assert len(calls) == 1

    connection.close()
    assert fake_redis.closed

    connection.get_client()
    assert len(calls) == 2


def test_close_failure_is_logged_not_raised(redis_settings: RedisSettings, fake_redis, monkeypatch) -> None:
    def broken_close() -> None:
        raise redis.ConnectionError("already gone")

    monkeypatch.setattr(fake_redis, "close", broken_close)
    connection = RedisConnection(redis_settings, client_factory=lambda _cfg: fake_redis)
    connection.get_client()

    connection.close()
