"""
Contact Pydantic schemas for request/response validation.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import UUID
import enum

from ledgercrm.models.contact import ContactRole, PortalStatus
from ledgercrm.models.contact_history import ContactChangeType


class PreferredChannel(str, enum.Enum):
    """Preferred way of reaching a contact."""
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    SMS = "SMS"
    PORTAL = "PORTAL"
    MAIL = "MAIL"


class CallWindow(BaseModel):
    """Hours during which the contact accepts calls (HH:MM, local time)."""
    start: str = Field("09:00", pattern=r"^\d{2}:\d{2}$")
    end: str = Field("17:00", pattern=r"^\d{2}:\d{2}$")
    weekdays_only: bool = True


class BlackoutPeriod(BaseModel):
    """Period during which the contact must not be contacted."""
    start: date
    end: date
    reason: Optional[str] = Field(None, max_length=200)


class Subscriptions(BaseModel):
    """Opt-in flags for outbound communication."""
    newsletter: bool = False
    tax_deadline_reminders: bool = True
    invoice_notifications: bool = True
    portal_notifications: bool = True


class CommunicationPreferences(BaseModel):
    """Structured communication preferences with an open extension map."""
    preferred_channel: PreferredChannel = PreferredChannel.EMAIL
    language: str = Field("pl", min_length=2, max_length=5)
    call_window: Optional[CallWindow] = None
    blackout_periods: List[BlackoutPeriod] = Field(default_factory=list)
    subscriptions: Subscriptions = Field(default_factory=Subscriptions)
    extra: Dict[str, Any] = Field(default_factory=dict)


class ContactBase(BaseModel):
    """Base contact schema with common fields."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    mobile: Optional[str] = Field(None, max_length=50)
    fax: Optional[str] = Field(None, max_length=50)
    position: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    roles: List[ContactRole] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=2000)


class ContactCreate(ContactBase):
    """Schema for creating a contact."""
    is_primary: bool = False
    communication_preferences: CommunicationPreferences = Field(default_factory=CommunicationPreferences)
    marketing_consent: Optional[bool] = None
    third_party_consent: Optional[bool] = None
    consent_source: str = Field("CRM", max_length=50)
    enable_portal_access: bool = False
    portal_permissions: Optional[List[str]] = None
    send_portal_invitation: bool = True


class ContactUpdate(BaseModel):
    """Schema for updating a contact (all fields optional)."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    mobile: Optional[str] = Field(None, max_length=50)
    fax: Optional[str] = Field(None, max_length=50)
    position: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    roles: Optional[List[ContactRole]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    is_primary: Optional[bool] = None
    is_active: Optional[bool] = None
    communication_preferences: Optional[CommunicationPreferences] = None
    marketing_consent: Optional[bool] = None
    third_party_consent: Optional[bool] = None
    consent_source: str = Field("CRM", max_length=50)


class ContactFilters(BaseModel):
    """Filters for listing contacts of a client."""
    roles: Optional[List[ContactRole]] = None
    has_portal_access: Optional[bool] = None
    is_active: Optional[bool] = None
    search: Optional[str] = Field(None, max_length=100)


class PrimaryContactTransfer(BaseModel):
    """Schema for designating a new primary contact."""
    contact_id: UUID


class PortalAccessEnable(BaseModel):
    """Schema for enabling portal access."""
    permissions: Optional[List[str]] = None
    send_invitation: bool = True


class PortalAccessRevoke(BaseModel):
    """Schema for revoking portal access."""
    reason: Optional[str] = Field(None, max_length=500)
    send_notification: bool = True


class ContactResponse(ContactBase):
    """Schema for contact response."""
    id: UUID
    client_id: UUID
    is_primary: bool
    is_active: bool
    has_portal_access: bool
    portal_status: PortalStatus
    portal_account_id: Optional[UUID] = None
    portal_invited_at: Optional[datetime] = None
    portal_activated_at: Optional[datetime] = None
    portal_revoked_at: Optional[datetime] = None
    communication_preferences: Dict[str, Any] = Field(default_factory=dict)
    consent: Dict[str, Any] = Field(default_factory=dict)
    created_by: UUID
    created_at: datetime
    updated_by: Optional[UUID] = None
    updated_at: Optional[datetime] = None
    deleted_by: Optional[UUID] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContactListResponse(BaseModel):
    """Schema for contact list response."""
    items: List[ContactResponse]
    total: int


class ContactHistoryResponse(BaseModel):
    """Schema for one contact history entry."""
    id: UUID
    contact_id: UUID
    change_type: ContactChangeType
    changed_fields: List[str]
    snapshot: Dict[str, Any]
    changed_by: UUID
    changed_at: datetime

    class Config:
        from_attributes = True


class ContactHistoryListResponse(BaseModel):
    """Schema for contact history list response."""
    items: List[ContactHistoryResponse]
    total: int
