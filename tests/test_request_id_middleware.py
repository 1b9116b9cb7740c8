from __future__ import annotations

from fastapi.testclient import TestClient

from gatekeeper.core.app_factory import create_app
from gatekeeper.core.config import LogSettings, RateLimitSettings, RedisSettings, Settings
from gatekeeper.main import app


client = TestClient(app)


def test_preserves_incoming_request_id_header():
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)

    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_custom_header_from_app_settings_is_used():
    app_settings = Settings(
        redis=RedisSettings(host=""),
        rate_limit=RateLimitSettings(),
        log=LogSettings(level="WARNING", request_id_header="X-Correlation-ID"),
    )
    custom_client = TestClient(create_app(app_settings))

    resp = custom_client.get("/hello", headers={"X-Correlation-ID": "corr-42"})

    assert resp.status_code == 200
    assert resp.headers.get("X-Correlation-ID") == "corr-42"
    assert "X-Request-ID" not in resp.headers
