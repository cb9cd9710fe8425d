"""
Health repository: database round-trip probe.
"""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession


class HealthRepository:
    """Runs a trivial query to prove the database answers."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def check_database(self) -> bool:
        try:
            result = await self.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return result.scalar() == 1
