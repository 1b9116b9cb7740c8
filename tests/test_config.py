"""Tests for settings parsing."""

import pytest

from gatekeeper.core.config import RateLimitSettings, RedisSettings, parse_csv


@pytest.mark.parametrize(
    ("kwargs", "expected"),
    [
        ({"host": "redis", "port": 6379}, True),
        ({"host": "", "port": 6379}, False),
        ({"host": "redis", "port": None}, False),
        ({"host": "redis", "port": -1}, False),
        ({"host": "redis", "port": 65536}, False),
    ],
)
def test_redis_is_configured(kwargs: dict, expected: bool) -> None:
    assert RedisSettings(**kwargs).is_configured is expected


def test_blank_port_env_means_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_HOST", "redis")
    monkeypatch.setenv("REDIS_PORT", "")

    cfg = RedisSettings()

    assert cfg.port is None
    assert cfg.is_configured is False


def test_rate_limit_knobs_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_CAPACITY", "50")
    monkeypatch.setenv("RATE_LIMIT_REFILL_TOKENS", "10")
    monkeypatch.setenv("RATE_LIMIT_REFILL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("RATE_LIMIT_EXEMPT_PATH_PREFIXES", "/internal/, /metrics")

    cfg = RateLimitSettings()

    assert (cfg.capacity, cfg.refill_tokens, cfg.refill_interval_seconds) == (50, 10, 0.5)
    assert cfg.exempt_prefixes == ("/internal/", "/metrics")


def test_defaults_match_deployment() -> None:
    cfg = RateLimitSettings()

    assert cfg.capacity == 100
    assert cfg.refill_tokens == 100
    assert cfg.refill_interval_seconds == 1.0
    assert cfg.idle_ttl_seconds == 60.0
    assert cfg.local_limit == 100
    assert cfg.exempt_prefixes == ("/actuator/", "/health")


def test_invalid_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimitSettings(capacity=0)


def test_parse_csv_drops_blanks() -> None:
    assert parse_csv(" a, ,b ,") == ("a", "b")
    assert parse_csv("") == ()
