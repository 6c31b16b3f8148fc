from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Protocol

import redis

from exam_portal.core.config import settings

_LOG = logging.getLogger("exam_portal.rate_limit")

KEY_PREFIX = "exam:rl:"


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after_seconds: int
    current_value: int


class RateLimiter(Protocol):
    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        ...


@dataclass
class _Window:
    count: int
    closes_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _window_length(window_seconds: int) -> int:
    return max(int(window_seconds), 1)


class InMemoryRateLimiter:
    """Fixed window counter; the window opens on the first hit of a key."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._windows: dict[str, _Window] = {}
        self._lock = Lock()
        self._clock = clock

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            # Closed windows are dropped so abandoned keys do not accumulate.
            for stale in [k for k, w in self._windows.items() if w.closes_at <= now]:
                del self._windows[stale]
            window = self._windows.get(key)
            if window is None:
                window = _Window(count=0, closes_at=now + timedelta(seconds=_window_length(window_seconds)))
                self._windows[key] = window
            window.count += 1
            count = window.count
            retry_after = int((window.closes_at - now).total_seconds())
        return RateLimitResult(allowed=count <= limit, retry_after_seconds=max(retry_after, 0), current_value=count)


class RedisRateLimiter:
    """Shared counter; INCR and the window TTL travel in one pipeline."""

    def __init__(self, client: redis.Redis, prefix: str = KEY_PREFIX):
        self.client = client
        self.prefix = prefix

    def hit(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        length = _window_length(window_seconds)
        name = self.prefix + key
        pipe = self.client.pipeline()
        pipe.incr(name)
        pipe.expire(name, length, nx=True)
        pipe.ttl(name)
        count, _, ttl = pipe.execute()
        ttl = int(ttl)
        return RateLimitResult(
            allowed=int(count) <= limit,
            retry_after_seconds=ttl if ttl >= 0 else length,
            current_value=int(count),
        )


_cached_limiter: RateLimiter | None = None


def redis_client() -> redis.Redis:
    return redis.Redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=0.4,
        socket_connect_timeout=0.4,
    )


def _build_limiter() -> RateLimiter:
    backend = str(settings.RATE_LIMIT_BACKEND or "auto").strip().lower()
    if backend == "memory":
        return InMemoryRateLimiter()
    try:
        client = redis_client()
        client.ping()
    except redis.RedisError:
        if backend == "redis":
            raise
        _LOG.warning("Redis limiter unavailable; OTP limits are per process until restart")
        return InMemoryRateLimiter()
    return RedisRateLimiter(client)


def get_rate_limiter() -> RateLimiter:
    global _cached_limiter
    if _cached_limiter is None:
        _cached_limiter = _build_limiter()
    return _cached_limiter


def reset_rate_limiter_for_tests() -> None:
    global _cached_limiter
    _cached_limiter = None
