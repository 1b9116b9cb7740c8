"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Settings are grouped by concern (REDIS_, RATE_LIMIT_, LOG_ prefixes) and
composed into a single ``Settings`` object.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production may inject everything through the environment only
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ first
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def parse_csv(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated setting into trimmed, non-empty items.

    Examples:
        >>> parse_csv("/actuator/, /health")
        ('/actuator/', '/health')
        >>> parse_csv(None)
        ()
    """

    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


class RedisSettings(BaseSettings):
    """Connection settings for the shared Redis store.

    An empty host (or an unusable port) is a supported state: the limiter then
    runs in pure local-fallback mode.
    """

    host: str = Field(
        "localhost",
        description="Redis host; empty disables the distributed limiter",
    )
    port: int | None = Field(
        6379,
        description="Redis TCP port",
    )
    password: str | None = Field(
        None,
        description="Optional Redis AUTH password",
    )
    db: int = Field(
        0,
        description="Redis logical database index",
        ge=0,
    )
    connect_timeout_seconds: float = Field(
        2.0,
        description="Connect and socket timeout for every Redis call",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )

    @field_validator("port", mode="before")
    @classmethod
    def _blank_port_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_configured(self) -> bool:
        """True when host and port describe a usable endpoint."""
        return bool(self.host.strip()) and self.port is not None and 0 < self.port <= 65535


class RateLimitSettings(BaseSettings):
    """Limiter knobs for both the distributed bucket and the local fallback."""

    enabled: bool = Field(
        True,
        description="Enable request admission control",
    )
    capacity: int = Field(
        100,
        description="Token bucket capacity (burst ceiling)",
        ge=1,
    )
    refill_tokens: int = Field(
        100,
        description="Tokens added per refill interval",
        ge=1,
    )
    refill_interval_seconds: float = Field(
        1.0,
        description="Length of one refill interval in seconds",
        gt=0,
    )
    idle_ttl_seconds: float = Field(
        60.0,
        description="Idle expiry of the bucket state in Redis",
        gt=0,
    )
    bucket_key: str = Field(
        "global",
        description="Limiter identity shared by all instances",
        min_length=1,
    )
    key_prefix: str = Field(
        "ratelimit:bucket:",
        description="Namespace prepended to bucket keys in Redis",
    )
    max_cas_retries: int = Field(
        8,
        description="Compare-and-swap attempts before treating Redis as failed",
        ge=1,
    )
    local_limit: int = Field(
        100,
        description="Requests allowed per local window while in fallback",
        ge=1,
    )
    local_window_seconds: float = Field(
        1.0,
        description="Local fallback window length in seconds",
        gt=0,
    )
    exempt_path_prefixes: str = Field(
        "/actuator/,/health",
        description="Comma-separated path prefixes that bypass the limiter",
    )
    reprobe_interval_seconds: float = Field(
        30.0,
        description="Seconds before re-probing an unavailable Redis (0 disables)",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )

    @property
    def exempt_prefixes(self) -> tuple[str, ...]:
        return parse_csv(self.exempt_path_prefixes)


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate the log file at this size (0 disables)", ge=0)
    backup_count: int = Field(5, description="Rotated files to keep", ge=0)
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_redis_settings() -> RedisSettings:
    # BaseSettings reads from the environment; no constructor arguments needed.
    return RedisSettings()


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()


def _build_log_settings() -> LogSettings:
    return LogSettings()


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
