"""
Timeline models: append-only chronological event log of a client.
"""

from sqlalchemy import (
    Column,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
import uuid
import enum

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class TimelineCategory(str, enum.Enum):
    """Broad origin of a timeline event."""
    SYSTEM = "SYSTEM"
    MANUAL = "MANUAL"
    COMMUNICATION = "COMMUNICATION"
    DOCUMENT = "DOCUMENT"
    INTEGRATION = "INTEGRATION"


class TimelineEventType(str, enum.Enum):
    """Timeline event type enumeration."""
    # System generated
    SYSTEM = "SYSTEM"
    CLIENT_CREATED = "CLIENT_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DATA_ENRICHED = "DATA_ENRICHED"
    VAT_VALIDATED = "VAT_VALIDATED"
    WHITELIST_VERIFIED = "WHITELIST_VERIFIED"
    CONTACT_ADDED = "CONTACT_ADDED"
    CONTACT_UPDATED = "CONTACT_UPDATED"
    CONTACT_REMOVED = "CONTACT_REMOVED"
    CONTACT_RESTORED = "CONTACT_RESTORED"
    PRIMARY_CONTACT_CHANGED = "PRIMARY_CONTACT_CHANGED"
    PORTAL_ACCESS_GRANTED = "PORTAL_ACCESS_GRANTED"
    PORTAL_ACCESS_ACTIVATED = "PORTAL_ACCESS_ACTIVATED"
    PORTAL_ACCESS_REVOKED = "PORTAL_ACCESS_REVOKED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    TAG_ADDED = "TAG_ADDED"
    TAG_REMOVED = "TAG_REMOVED"
    # Manual
    NOTE = "NOTE"
    TASK = "TASK"
    # Communication
    CALL = "CALL"
    MEETING = "MEETING"
    EMAIL = "EMAIL"


class TaskPriority(str, enum.Enum):
    """Priority of a timeline task."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TimelineEvent(Base):
    """
    One entry of a client's timeline.

    Rows are never updated except for task completion fields and the
    soft-delete tombstone of MANUAL events.
    """

    __tablename__ = "timeline_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(SQLEnum(TimelineEventType), nullable=False, index=True)
    category = Column(SQLEnum(TimelineCategory), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    changes = Column(JSONType, nullable=True)  # {"before": {...}, "after": {...}}
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    attachments = Column(JSONType, nullable=False, default=list)

    # Task fields
    due_at = Column(DateTime, nullable=True)
    priority = Column(SQLEnum(TaskPriority), nullable=True)
    task_completed = Column(Boolean, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(Uuid(as_uuid=True), nullable=True)

    created_by = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    deleted_by = Column(Uuid(as_uuid=True), nullable=True)
    deleted_at = Column(DateTime, nullable=True, index=True)

    # Relationships
    tag_links = relationship(
        "TimelineEventTag",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TimelineEventTag.tag",
    )

    @property
    def tags(self) -> list:
        return [link.tag for link in self.tag_links]


class TimelineEventTag(Base):
    """Tag attached to a timeline event."""

    __tablename__ = "timeline_event_tags"
    __table_args__ = (
        UniqueConstraint("event_id", "tag", name="uq_timeline_event_tag"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), ForeignKey("timeline_events.id", ondelete="CASCADE"), nullable=False, index=True)
    tag = Column(String(50), nullable=False, index=True)

    event = relationship("TimelineEvent", back_populates="tag_links")
