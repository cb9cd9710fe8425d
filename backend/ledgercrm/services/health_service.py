"""
Health service.
Provides health check functionality.
"""

import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ledgercrm.core.cache import Cache
from ledgercrm.core.config import settings
from ledgercrm.core.logging import get_logger
from ledgercrm.schemas.health import HealthResponse

logger = get_logger(__name__)

CACHE_PROBE_KEY = "health:probe"


class HealthService:
    """Service for health check operations."""

    def __init__(self, cache: Optional[Cache] = None):
        self.start_time = time.time()
        self.cache = cache

    async def check_database(self) -> str:
        from ledgercrm.db import session as db_session
        from ledgercrm.db.repositories.health_repository import HealthRepository

        if db_session.async_session_maker is None:
            return "error: not initialized"
        try:
            async with db_session.async_session_maker() as session:
                ok = await HealthRepository(session).check_database()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database health check failed: {e}")
            return f"error: {e}"
        return "ok" if ok else "error"

    async def check_cache(self) -> str:
        if self.cache is None:
            return "not configured"
        try:
            # increment surfaces backend errors that reads and writes would swallow
            await self.cache.increment(CACHE_PROBE_KEY)
            await self.cache.expire(CACHE_PROBE_KEY, 60)
        except Exception as e:
            logger.warning(f"Cache health check failed: {e}")
            return f"error: {e}"
        return "ok"

    async def get_health(self) -> HealthResponse:
        """
        Get system health status.

        Returns:
            HealthResponse with status, uptime, and checks
        """
        uptime_seconds = int(time.time() - self.start_time)

        checks = {
            "database": await self.check_database(),
            "cache": await self.check_cache(),
        }
        status = "ok" if all(check in ("ok", "not configured") for check in checks.values()) else "degraded"

        return HealthResponse(
            status=status,
            version=settings.VERSION,
            uptime=f"PT{uptime_seconds}S",  # ISO 8601 duration
            checks=checks,
        )
