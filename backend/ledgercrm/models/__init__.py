"""
Database models.
Import all models here to ensure they're registered with Base.
"""

from ledgercrm.models.client import Client, ClientStatus
from ledgercrm.models.contact import Contact, ContactRole, ContactRoleLink, PortalStatus
from ledgercrm.models.portal_account import PortalAccount
from ledgercrm.models.contact_history import ContactHistoryEntry, ContactChangeType
from ledgercrm.models.vat_validation import VatValidationRecord, VatStatus
from ledgercrm.models.whitelist_verification import WhitelistVerificationRecord, WhitelistStatus
from ledgercrm.models.timeline_event import (
    TimelineEvent,
    TimelineEventTag,
    TimelineEventType,
    TimelineCategory,
    TaskPriority,
)
from ledgercrm.models.audit_log import AuditLog

__all__ = [
    "Client",
    "ClientStatus",
    "Contact",
    "ContactRole",
    "ContactRoleLink",
    "PortalStatus",
    "PortalAccount",
    "ContactHistoryEntry",
    "ContactChangeType",
    "VatValidationRecord",
    "VatStatus",
    "WhitelistVerificationRecord",
    "WhitelistStatus",
    "TimelineEvent",
    "TimelineEventTag",
    "TimelineEventType",
    "TimelineCategory",
    "TaskPriority",
    "AuditLog",
]
