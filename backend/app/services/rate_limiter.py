"""Per-subject fixed-window rate limiting.

The limiter is best-effort: the default store lives in process memory and
forgets everything on restart. Concurrent attempts for the same subject may
over- or under-count by one; no locking is done.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import redis.asyncio as redis

from app.config import Settings
from app.errors import ConfigurationError, RateLimited

logger = logging.getLogger(__name__)


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    limit: int
    reset_at: float

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class WindowStore(Protocol):
    async def hit(self, subject_id: str, now: float, window_seconds: float) -> RateWindow:
        """Record one attempt and return the subject's window after it."""
        ...


class InMemoryWindowStore:
    def __init__(self):
        self._windows: dict[str, RateWindow] = {}

    async def hit(self, subject_id: str, now: float, window_seconds: float) -> RateWindow:
        window = self._windows.get(subject_id)
        if window is None or now > window.reset_at:
            window = RateWindow(count=0, reset_at=now + window_seconds)
            self._windows[subject_id] = window
        window.count += 1
        return window

    def get(self, subject_id: str) -> RateWindow | None:
        return self._windows.get(subject_id)

    def clear(self):
        self._windows.clear()


class RedisWindowStore:
    """Shares windows between gateway instances through Redis counters."""

    def __init__(self, client: redis.Redis, prefix: str = "ratelimit"):
        self._redis = client
        self._prefix = prefix

    def key(self, subject_id: str) -> str:
        return f"{self._prefix}:{subject_id}"

    async def hit(self, subject_id: str, now: float, window_seconds: float) -> RateWindow:
        key = self.key(subject_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, px=int(window_seconds * 1000), nx=True)
            pipe.incr(key)
            pipe.pttl(key)
            _, count, ttl_ms = await pipe.execute()
        return RateWindow(count=int(count), reset_at=now + max(int(ttl_ms), 0) / 1000)

    async def close(self):
        await self._redis.aclose()


class RateLimiter:
    def __init__(
        self,
        store: WindowStore,
        limit: int = 5,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ConfigurationError("Rate limit must allow at least one request")
        self.store = store
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock

    async def check(self, subject_id: str) -> RateDecision:
        """Count an attempt for ``subject_id`` without raising."""
        now = self._clock()
        try:
            window = await self.store.hit(subject_id, now, self.window_seconds)
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable, allowing request: {e}")
            return RateDecision(allowed=True, count=0, limit=self.limit, reset_at=now + self.window_seconds)
        return RateDecision(
            allowed=window.count <= self.limit,
            count=window.count,
            limit=self.limit,
            reset_at=window.reset_at,
        )

    async def acquire(self, subject_id: str) -> RateDecision:
        """Count an attempt and raise ``RateLimited`` once the ceiling is passed."""
        decision = await self.check(subject_id)
        if not decision.allowed:
            retry_after = max(math.ceil(decision.reset_at - self._clock()), 1)
            logger.info(f"Rate limit exceeded for {subject_id} ({decision.count}/{self.limit})")
            raise RateLimited(retry_after=retry_after)
        return decision

    async def close(self):
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        store = RedisWindowStore(
            redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        )
    elif settings.rate_limit_backend == "memory":
        store = InMemoryWindowStore()
    else:
        raise ConfigurationError(f"Unknown rate limit backend: {settings.rate_limit_backend}")
    return RateLimiter(
        store,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
