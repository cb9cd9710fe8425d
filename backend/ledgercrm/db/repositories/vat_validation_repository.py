"""
VAT validation record repository for database operations.
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.vat_validation import VatValidationRecord


class VatValidationRepository(BaseRepository[VatValidationRecord]):
    """Repository for VAT validation records."""

    def __init__(self, session: AsyncSession):
        super().__init__(VatValidationRecord, session)

    async def get_latest_since(
        self,
        vat_number: str,
        since: datetime,
        organization_id: UUID,
    ) -> Optional[VatValidationRecord]:
        """Most recent record for a VAT number validated at or after `since`."""
        result = await self.session.execute(
            select(VatValidationRecord)
            .where(VatValidationRecord.vat_number == vat_number)
            .where(VatValidationRecord.organization_id == organization_id)
            .where(VatValidationRecord.validated_at >= since)
            .order_by(VatValidationRecord.validated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_vat_number(
        self,
        vat_number: str,
        organization_id: UUID,
        limit: int = 50,
    ) -> List[VatValidationRecord]:
        """Validation history of a VAT number, newest first."""
        result = await self.session.execute(
            select(VatValidationRecord)
            .where(VatValidationRecord.vat_number == vat_number)
            .where(VatValidationRecord.organization_id == organization_id)
            .order_by(VatValidationRecord.validated_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_latest_for_client(
        self,
        client_id: UUID,
        organization_id: UUID,
    ) -> Optional[VatValidationRecord]:
        """Most recent record linked to a client."""
        result = await self.session.execute(
            select(VatValidationRecord)
            .where(VatValidationRecord.client_id == client_id)
            .where(VatValidationRecord.organization_id == organization_id)
            .order_by(VatValidationRecord.validated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
