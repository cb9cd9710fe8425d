"""
Audit log model: append-only security/compliance log, independent of the timeline.
"""

from sqlalchemy import Column, String, DateTime, Uuid
import uuid

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class AuditLog(Base):
    """Captures WHO did WHAT to WHICH entity."""

    __tablename__ = "audit_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    actor_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(64), nullable=True, index=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
