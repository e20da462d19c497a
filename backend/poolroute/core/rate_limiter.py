"""
Sliding window rate limiter for technician field actions.

The limiter is a component with an explicit lifecycle: ``create_app`` builds one,
stores it on ``app.state`` and closes it on shutdown; handlers receive it through
the ``field_action_limit`` dependency. Counters live either in process memory
(guarded by an asyncio lock) or in Redis sorted sets.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Optional, Protocol

from fastapi import Depends, Request

from poolroute.core.config import settings
from poolroute.core.exceptions import RateLimitException
from poolroute.core.security import Identity, get_identity

logger = logging.getLogger(__name__)


class RateLimitBackend(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: int, now: float) -> tuple[bool, int]:
        """Record a hit; return (allowed, requests counted in window)."""

    async def reset(self) -> None: ...

    async def close(self) -> None: ...


class InMemoryBackend:
    """Per-process timestamps keyed by actor."""

    def __init__(self):
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, limit: int, window_seconds: int, now: float) -> tuple[bool, int]:
        window_start = now - window_seconds
        async with self._lock:
            timestamps = self._hits.setdefault(key, deque())
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()

            if len(timestamps) >= limit:
                return False, len(timestamps)

            timestamps.append(now)
            self._prune(window_start)
            return True, len(timestamps)

    def _prune(self, window_start: float) -> None:
        stale = [k for k, v in self._hits.items() if not v or v[-1] <= window_start]
        for key in stale:
            del self._hits[key]

    async def reset(self) -> None:
        async with self._lock:
            self._hits.clear()

    async def close(self) -> None:
        await self.reset()


class RedisBackend:
    """Shared counters in Redis sorted sets (one per actor)."""

    def __init__(self, redis_url: str):
        import redis.asyncio as redis

        self._redis = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    async def hit(self, key: str, limit: int, window_seconds: int, now: float) -> tuple[bool, int]:
        redis_key = f"rate_limit:{key}"
        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
        pipe.zcard(redis_key)
        results = await pipe.execute()
        current_count = results[1]

        if current_count >= limit:
            return False, current_count

        pipe = self._redis.pipeline()
        pipe.zadd(redis_key, {str(now): now})
        pipe.expire(redis_key, window_seconds + 1)
        await pipe.execute()
        return True, current_count + 1

    async def reset(self) -> None:
        async for key in self._redis.scan_iter(match="rate_limit:*"):
            await self._redis.delete(key)

    async def close(self) -> None:
        await self._redis.aclose()


class SlidingWindowRateLimiter:
    """
    Sliding window limiter keyed by actor.

    Args:
        limit: Maximum requests per window
        window_seconds: Window length in seconds
        backend: Counter storage; in-memory when omitted
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int = 60,
        backend: Optional[RateLimitBackend] = None,
        enabled: bool = True,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.enabled = enabled
        self._backend = backend or InMemoryBackend()

    async def check(self, key: str, now: Optional[float] = None) -> None:
        """Count a request for ``key``; raise RateLimitException when over the limit."""
        if not self.enabled:
            return

        allowed, _ = await self._backend.hit(
            key, self.limit, self.window_seconds, time.time() if now is None else now
        )
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}")
            raise RateLimitException(limit=self.limit, retry_after=self.window_seconds)

    async def reset(self) -> None:
        await self._backend.reset()

    async def close(self) -> None:
        await self._backend.close()


def create_field_action_limiter() -> SlidingWindowRateLimiter:
    """Build the field action limiter from settings."""
    backend: Optional[RateLimitBackend] = None
    if settings.RATE_LIMIT_BACKEND == "redis":
        backend = RedisBackend(settings.REDIS_URL)

    return SlidingWindowRateLimiter(
        limit=settings.FIELD_ACTIONS_PER_MINUTE,
        window_seconds=settings.FIELD_ACTIONS_WINDOW_SECONDS,
        backend=backend,
        enabled=settings.RATE_LIMIT_ENABLED,
    )


def get_field_action_limiter(request: Request) -> SlidingWindowRateLimiter:
    """Limiter owned by the running application."""
    return request.app.state.field_action_limiter


async def field_action_limit(
    identity: Identity = Depends(get_identity),
    limiter: SlidingWindowRateLimiter = Depends(get_field_action_limiter),
) -> Identity:
    """Rate limit field actions per acting user; yields the identity for the handler."""
    await limiter.check(f"{identity.company_id}:{identity.user_id}")
    return identity
