"""
Contact history repository for database operations.
"""

from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.contact_history import ContactHistoryEntry


class ContactHistoryRepository(BaseRepository[ContactHistoryEntry]):
    """Repository for contact history operations. Entries are insert-only."""

    def __init__(self, session: AsyncSession):
        super().__init__(ContactHistoryEntry, session)

    async def list_by_contact(self, contact_id: UUID, organization_id: UUID) -> List[ContactHistoryEntry]:
        """List history entries of a contact, oldest first."""
        result = await self.session.execute(
            select(ContactHistoryEntry)
            .where(ContactHistoryEntry.contact_id == contact_id)
            .where(ContactHistoryEntry.organization_id == organization_id)
            .order_by(ContactHistoryEntry.changed_at, ContactHistoryEntry.id)
        )
        return list(result.scalars().all())
