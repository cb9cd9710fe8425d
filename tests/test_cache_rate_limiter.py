"""
Tests for the in-memory cache and the outbound rate limiter.
"""

import pytest

from ledgercrm.core.cache import InMemoryCache
from ledgercrm.core.exceptions import RateLimitError
from ledgercrm.core.rate_limiter import FixedWindowRateLimiter


class Ticker:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def test_cache_round_trips_json():
    cache = InMemoryCache(clock=Ticker())
    await cache.set("k", {"a": [1, 2], "b": None}, ttl_seconds=10)
    assert await cache.get("k") == {"a": [1, 2], "b": None}


async def test_cache_entries_expire():
    ticker = Ticker()
    cache = InMemoryCache(clock=ticker)
    await cache.set("k", "v", ttl_seconds=10)

    ticker.now += 9
    assert await cache.get("k") == "v"
    ticker.now += 1
    assert await cache.get("k") is None


async def test_cache_delete():
    cache = InMemoryCache(clock=Ticker())
    await cache.set("k", 1, ttl_seconds=10)
    await cache.delete("k")
    assert await cache.get("k") is None


async def test_increment_keeps_expiry():
    ticker = Ticker()
    cache = InMemoryCache(clock=ticker)

    assert await cache.increment("n") == 1
    await cache.expire("n", 5)
    assert await cache.increment("n") == 2
    ticker.now += 5
    assert await cache.increment("n") == 1


async def test_limiter_blocks_after_limit():
    ticker = Ticker(now=600.0)
    limiter = FixedWindowRateLimiter(InMemoryCache(clock=ticker), limit=3, window_seconds=60, clock=ticker)

    assert [await limiter.acquire() for _ in range(3)] == [1, 2, 3]
    with pytest.raises(RateLimitError):
        await limiter.acquire()


async def test_limiter_resets_in_next_window():
    ticker = Ticker(now=600.0)
    limiter = FixedWindowRateLimiter(InMemoryCache(clock=ticker), limit=1, window_seconds=60, clock=ticker)

    await limiter.acquire()
    ticker.now += 60
    assert await limiter.acquire() == 1


async def test_limiters_sharing_a_cache_share_a_budget():
    ticker = Ticker(now=600.0)
    cache = InMemoryCache(clock=ticker)
    first = FixedWindowRateLimiter(cache, limit=2, key_prefix="ratelimit:vies", clock=ticker)
    second = FixedWindowRateLimiter(cache, limit=2, key_prefix="ratelimit:vies", clock=ticker)

    await first.acquire()
    await second.acquire()
    with pytest.raises(RateLimitError):
        await first.acquire()
