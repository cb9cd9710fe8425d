"""
Contact history model: immutable snapshots of a contact at each change.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Uuid, Enum as SQLEnum
from sqlalchemy.orm import relationship
import uuid
import enum

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class ContactChangeType(str, enum.Enum):
    """Kind of change recorded in contact history."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"


class ContactHistoryEntry(Base):
    """Audit trail entry for one contact mutation. Never updated or deleted."""

    __tablename__ = "contact_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    contact_id = Column(Uuid(as_uuid=True), ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    change_type = Column(SQLEnum(ContactChangeType), nullable=False)
    changed_fields = Column(JSONType, nullable=False, default=list)
    snapshot = Column(JSONType, nullable=False)
    changed_by = Column(Uuid(as_uuid=True), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Relationships
    contact = relationship("Contact")
