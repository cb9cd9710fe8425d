"""
Whitelist verification record repository for database operations.
"""

from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.whitelist_verification import WhitelistVerificationRecord


class WhitelistVerificationRepository(BaseRepository[WhitelistVerificationRecord]):
    """Repository for whitelist verification records."""

    def __init__(self, session: AsyncSession):
        super().__init__(WhitelistVerificationRecord, session)

    async def list_by_nip(
        self,
        nip: str,
        organization_id: UUID,
        limit: int = 50,
    ) -> List[WhitelistVerificationRecord]:
        """Verification history of a NIP, newest first."""
        result = await self.session.execute(
            select(WhitelistVerificationRecord)
            .where(WhitelistVerificationRecord.nip == nip)
            .where(WhitelistVerificationRecord.organization_id == organization_id)
            .order_by(WhitelistVerificationRecord.verified_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
