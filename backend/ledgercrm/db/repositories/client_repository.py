"""
Client repository for database operations.
"""

from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.client import Client


class ClientRepository(BaseRepository[Client]):
    """Repository for client lookups."""

    def __init__(self, session: AsyncSession):
        super().__init__(Client, session)

    async def get_for_update(self, id: UUID, organization_id: UUID) -> Optional[Client]:
        """Get a client and lock its row for the current transaction."""
        result = await self.session.execute(
            select(Client)
            .where(Client.id == id)
            .where(Client.organization_id == organization_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()
