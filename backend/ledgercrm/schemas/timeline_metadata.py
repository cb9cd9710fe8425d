"""
Typed metadata payloads stored on timeline events.

Each event type has its own payload model; `extra` is an open map for
forward-compatible fields that core logic never reads.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import UUID
import enum


class TimelineMetadata(BaseModel):
    """Base payload."""
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ContactEventMetadata(TimelineMetadata):
    contact_id: UUID
    contact_name: str
    is_primary: bool = False
    changed_fields: List[str] = Field(default_factory=list)
    new_primary_contact_id: Optional[UUID] = None


class PrimaryContactChangedMetadata(TimelineMetadata):
    previous_contact_id: Optional[UUID] = None
    new_contact_id: UUID
    new_contact_name: str


class PortalAccessMetadata(TimelineMetadata):
    contact_id: UUID
    contact_name: str
    portal_account_id: Optional[UUID] = None
    permissions: List[str] = Field(default_factory=list)
    notification_sent: bool = False
    reason: Optional[str] = None


class VatValidatedMetadata(TimelineMetadata):
    vat_number: str
    status: str
    valid: bool
    record_id: Optional[UUID] = None
    company_name: Optional[str] = None


class WhitelistVerifiedMetadata(TimelineMetadata):
    nip: str
    status: str
    verification_date: date
    bank_account: Optional[str] = None
    record_id: Optional[UUID] = None


class StatusChangedMetadata(TimelineMetadata):
    from_status: Optional[str] = None
    to_status: str
    reason: Optional[str] = None


class DataEnrichedMetadata(TimelineMetadata):
    source: str
    fields: List[str] = Field(default_factory=list)


class ClientCreatedMetadata(TimelineMetadata):
    client_name: str
    source: Optional[str] = None


class DocumentMetadata(TimelineMetadata):
    document_id: UUID
    file_name: str
    document_type: Optional[str] = None
    size_bytes: Optional[int] = None


class TagMetadata(TimelineMetadata):
    tag: str


class CallDirection(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class CallMetadata(TimelineMetadata):
    direction: CallDirection = CallDirection.OUTBOUND
    duration_minutes: Optional[int] = None
    contact_id: Optional[UUID] = None
    phone_number: Optional[str] = None
    outcome: Optional[str] = None


class MeetingMetadata(TimelineMetadata):
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    location: Optional[str] = None
    attendees: List[str] = Field(default_factory=list)
    contact_ids: List[UUID] = Field(default_factory=list)
