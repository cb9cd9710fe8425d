"""
Audit log repository. Insert-only.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.audit_log import AuditLog


class AuditLogRepository(BaseRepository[AuditLog]):
    """Repository for audit log entries."""

    def __init__(self, session: AsyncSession):
        super().__init__(AuditLog, session)

    async def list_by_entity(self, entity_type: str, entity_id: Optional[str] = None) -> List[AuditLog]:
        """List audit entries for an entity type (and optionally one entity), oldest first."""
        query = select(AuditLog).where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == entity_id)
        result = await self.session.execute(query.order_by(AuditLog.created_at, AuditLog.id))
        return list(result.scalars().all())
