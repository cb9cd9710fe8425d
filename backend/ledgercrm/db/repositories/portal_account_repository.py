"""
Portal account repository for database operations.
"""

from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.portal_account import PortalAccount


class PortalAccountRepository(BaseRepository[PortalAccount]):
    """Repository for portal account operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(PortalAccount, session)

    async def list_by_contact(self, contact_id: UUID) -> List[PortalAccount]:
        """All portal access cycles of a contact, oldest first."""
        result = await self.session.execute(
            select(PortalAccount)
            .where(PortalAccount.contact_id == contact_id)
            .order_by(PortalAccount.invited_at)
        )
        return list(result.scalars().all())
