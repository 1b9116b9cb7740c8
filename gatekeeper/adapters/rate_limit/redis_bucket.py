"""Distributed token bucket stored in Redis.

Each bucket is one string key holding ``{"tokens": n, "last_refill_ms": t}``.
Updates use optimistic locking: WATCH the key, read and recompute the state
client-side, then write it inside MULTI/EXEC. EXEC fails with ``WatchError``
when another process wrote the key in between, and the attempt is retried up
to ``max_cas_retries`` times. The sum of tokens granted across all processes
therefore never exceeds what the bucket actually held.

Refill is interval based: only whole elapsed intervals add tokens, and the
refill timestamp advances by exactly those intervals so a partial interval is
never lost.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import redis

from gatekeeper.adapters.rate_limit.base import AbstractTokenBucket, BucketConfiguration
from gatekeeper.adapters.rate_limit.connection import RedisConnection
from gatekeeper.core.errors import (
    BackendContentionError,
    BackendProtocolError,
    BackendUnreachableError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BucketState:
    """Token count and the instant of the last applied refill (epoch ms)."""

    tokens: int
    last_refill_ms: int


def refill(state: BucketState, config: BucketConfiguration, now_ms: int) -> BucketState:
    """Apply every whole refill interval elapsed since ``state.last_refill_ms``.

    Tokens are capped at the bucket capacity. A clock that moved backwards adds
    nothing and leaves the timestamp untouched.
    """

    elapsed = now_ms - state.last_refill_ms
    interval_ms = config.refill_interval_ms
    if elapsed < interval_ms:
        return BucketState(tokens=min(state.tokens, config.capacity), last_refill_ms=state.last_refill_ms)

    intervals = elapsed // interval_ms
    tokens = min(config.capacity, state.tokens + intervals * config.refill_tokens)
    return BucketState(tokens=tokens, last_refill_ms=state.last_refill_ms + intervals * interval_ms)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def encode_state(state: BucketState) -> bytes:
    return json.dumps(
        {"tokens": state.tokens, "last_refill_ms": state.last_refill_ms},
        separators=(",", ":"),
    ).encode()


def decode_state(raw: bytes | str) -> BucketState:
    """Parse stored bucket state.

    Raises:
        ValueError: If the payload is not a well-formed bucket state.
    """

    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("bucket state must be a JSON object")

    tokens = payload.get("tokens")
    last_refill_ms = payload.get("last_refill_ms")
    if not _is_int(tokens) or not _is_int(last_refill_ms):
        raise ValueError("bucket state fields must be integers")
    if tokens < 0:
        raise ValueError("bucket state holds a negative token count")
    return BucketState(tokens=tokens, last_refill_ms=last_refill_ms)


class RedisTokenBucket(AbstractTokenBucket):
    """Token bucket shared by every instance through Redis.

    Args:
        connection: Shared Redis client owner.
        config: Capacity and refill rate.
        idle_ttl_seconds: Expiry refreshed on every write; an expired key is
            recreated at full capacity.
        key_prefix: Namespace for bucket keys.
        max_cas_retries: Optimistic-lock attempts per call.
        clock: Wall-clock time source in seconds, shared by all instances.
    """

    def __init__(
        self,
        connection: RedisConnection,
        config: BucketConfiguration,
        *,
        idle_ttl_seconds: float = 60.0,
        key_prefix: str = "ratelimit:bucket:",
        max_cas_retries: int = 8,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if idle_ttl_seconds <= 0:
            raise ValueError("idle_ttl_seconds must be > 0")
        if max_cas_retries < 1:
            raise ValueError("max_cas_retries must be >= 1")

        self._connection = connection
        self._config = config
        self._ttl_ms = int(idle_ttl_seconds * 1000)
        self._key_prefix = key_prefix
        self._max_cas_retries = max_cas_retries
        self._clock = clock

    def redis_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def try_consume(self, key: str, cost: int = 1) -> bool:
        """Take ``cost`` tokens from the shared bucket.

        Raises:
            ValueError: If key is empty or cost is invalid.
            BackendUnreachableError: Redis timed out or refused the connection.
            BackendProtocolError: Stored state or a Redis reply is malformed.
            BackendContentionError: Every CAS attempt lost to another writer.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        redis_key = self.redis_key(key)
        try:
            return self._consume(redis_key, cost)
        except redis.ResponseError as exc:
            raise BackendProtocolError(
                code="backend_protocol_error",
                message="Redis rejected the bucket update",
                details={"key": redis_key, "error_type": type(exc).__name__},
            ) from exc
        except redis.RedisError as exc:
            raise BackendUnreachableError(
                code="backend_unreachable",
                message="Redis did not answer the bucket update",
                details={"key": redis_key, "error_type": type(exc).__name__},
            ) from exc

    def _consume(self, redis_key: str, cost: int) -> bool:
        client = self._connection.get_client()
        with client.pipeline() as pipe:
            for attempt in range(1, self._max_cas_retries + 1):
                try:
                    pipe.watch(redis_key)
                    now_ms = int(self._clock() * 1000)
                    state = refill(self._load(pipe.get(redis_key), redis_key, now_ms), self._config, now_ms)

                    allowed = state.tokens >= cost
                    if allowed:
                        state = BucketState(tokens=state.tokens - cost, last_refill_ms=state.last_refill_ms)

                    pipe.multi()
                    pipe.set(redis_key, encode_state(state), px=self._ttl_ms)
                    pipe.execute()
                    return allowed
                except redis.WatchError:
                    logger.debug("redis_bucket.cas_conflict", extra={"attempt": attempt})

        logger.warning(
            "redis_bucket.cas_exhausted",
            extra={"key": redis_key, "attempts": self._max_cas_retries},
        )
        raise BackendContentionError(
            code="backend_contention",
            message="Bucket update kept conflicting with concurrent writers",
            details={"key": redis_key, "attempts": self._max_cas_retries},
        )

    def _load(self, raw: bytes | str | None, redis_key: str, now_ms: int) -> BucketState:
        if raw is None:
            return BucketState(tokens=self._config.capacity, last_refill_ms=now_ms)
        try:
            return decode_state(raw)
        except (ValueError, TypeError) as exc:
            raise BackendProtocolError(
                code="backend_protocol_error",
                message="Stored bucket state is malformed",
                details={"key": redis_key, "error_type": type(exc).__name__},
            ) from exc
