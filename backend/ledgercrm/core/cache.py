"""
Key-value cache with TTL fronting the external verification registries.

Values are JSON documents. Cache errors are logged and reported as misses;
callers never fail because the cache is unavailable.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class Cache(Protocol):
    """Cache operations used by the verification services and rate limiter."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def increment(self, key: str) -> int: ...

    async def expire(self, key: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisCache:
    """Redis-backed cache using redis.asyncio."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Establish the Redis connection on first use."""
        if self.redis is None:
            self.redis = redis.from_url(self.redis_url, decode_responses=True)
            logger.info(f"Verification cache connected to Redis at {self.redis_url}")

    async def close(self) -> None:
        """Close the Redis connection."""
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def get(self, key: str) -> Optional[Any]:
        await self.connect()
        try:
            cached = await self.redis.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if cached is None:
            logger.debug(f"Cache miss for {key}")
            return None
        logger.debug(f"Cache hit for {key}")
        return json.loads(cached)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.connect()
        try:
            await self.redis.setex(key, ttl_seconds, json.dumps(value, default=str))
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def increment(self, key: str) -> int:
        # Counter errors propagate: the rate limiter must not silently allow calls
        await self.connect()
        return int(await self.redis.incr(key))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self.connect()
        await self.redis.expire(key, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.connect()
        try:
            await self.redis.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")


class InMemoryCache:
    """
    Process-local cache with the same semantics as RedisCache.

    Used for local runs without Redis and in tests. Values are round-tripped
    through JSON so callers observe the same types as with Redis.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return raw

    async def get(self, key: str) -> Optional[Any]:
        raw = self._live(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (json.dumps(value, default=str), self._clock() + ttl_seconds)

    async def increment(self, key: str) -> int:
        async with self._lock:
            raw = self._live(key)
            count = int(json.loads(raw)) + 1 if raw is not None else 1
            expires_at = self._data[key][1] if raw is not None else None
            self._data[key] = (json.dumps(count), expires_at)
            return count

    async def expire(self, key: str, ttl_seconds: int) -> None:
        raw = self._live(key)
        if raw is not None:
            self._data[key] = (raw, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
