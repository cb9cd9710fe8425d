"""
Fixed-window rate limiter bounding outbound registry calls.
"""

import logging
import time
from typing import Callable

from ledgercrm.core.cache import Cache
from ledgercrm.core.exceptions import RateLimitError

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """
    Counts calls per window bucket in the shared cache.

    The counter key is derived from the current window number, so every
    process talking to the same cache shares one budget per window.
    """

    def __init__(
        self,
        cache: Cache,
        limit: int,
        window_seconds: int = 60,
        key_prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self._clock = clock

    def _bucket_key(self) -> str:
        bucket = int(self._clock() // self.window_seconds)
        return f"{self.key_prefix}:{bucket}"

    async def acquire(self) -> int:
        """
        Consume one unit of the current window's budget.

        Returns:
            The count within the current window after this call

        Raises:
            RateLimitError: If the window's ceiling has been reached
        """
        key = self._bucket_key()
        count = await self.cache.increment(key)
        if count == 1:
            # Keep the bucket around a little longer than the window itself
            await self.cache.expire(key, self.window_seconds * 2)
        if count > self.limit:
            logger.warning(
                "Outbound rate limit exceeded",
                extra={"key": key, "count": count, "limit": self.limit},
            )
            raise RateLimitError(
                f"Rate limit of {self.limit} requests per {self.window_seconds}s exceeded",
                details={"limit": self.limit, "window_seconds": self.window_seconds},
            )
        return count
