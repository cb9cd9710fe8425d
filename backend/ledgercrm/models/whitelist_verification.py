"""
Whitelist verification record: the outcome of one national whitelist lookup.
"""

from sqlalchemy import Column, String, Boolean, Date, DateTime, ForeignKey, Uuid, Enum as SQLEnum
import uuid
import enum

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class WhitelistStatus(str, enum.Enum):
    """Outcome of a whitelist verification."""
    ON_WHITELIST = "ON_WHITELIST"
    NOT_REGISTERED = "NOT_REGISTERED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    NIP_INVALID = "NIP_INVALID"
    SERVICE_ERROR = "SERVICE_ERROR"


class WhitelistVerificationRecord(Base):
    """Persisted whitelist answer. Immutable except for the client linkage."""

    __tablename__ = "whitelist_verification_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    nip = Column(String(10), nullable=False, index=True)
    bank_account = Column(String(34), nullable=True)
    verification_date = Column(Date, nullable=False)
    status = Column(SQLEnum(WhitelistStatus), nullable=False)
    nip_valid = Column(Boolean, nullable=False)
    account_valid = Column(Boolean, nullable=True)
    subject_name = Column(String(500), nullable=True)
    registration_status = Column(String(50), nullable=True)
    registered_accounts = Column(JSONType, nullable=False, default=list)
    request_identifier = Column(String(100), nullable=True)
    verified_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    raw_response = Column(JSONType, nullable=True)
    verified_by = Column(Uuid(as_uuid=True), nullable=False)
