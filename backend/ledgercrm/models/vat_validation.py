"""
VAT validation record: the outcome of one call to the EU VAT registry.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, Enum as SQLEnum
import uuid
import enum

from ledgercrm.db.base import Base, JSONType
from ledgercrm.utils.clock import utcnow


class VatStatus(str, enum.Enum):
    """Outcome of a VAT number validation."""
    VALID = "VALID"
    INVALID = "INVALID"
    NOT_FOUND = "NOT_FOUND"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    ERROR = "ERROR"


class VatValidationRecord(Base):
    """Persisted registry answer. Immutable except for the client linkage."""

    __tablename__ = "vat_validation_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    organization_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    vat_number = Column(String(20), nullable=False, index=True)
    country_code = Column(String(2), nullable=False)
    valid = Column(Boolean, nullable=False)
    status = Column(SQLEnum(VatStatus), nullable=False)
    company_name = Column(String(500), nullable=True)
    company_address = Column(String(1000), nullable=True)
    request_identifier = Column(String(100), nullable=True)
    validated_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    cache_expires_at = Column(DateTime, nullable=False)
    raw_response = Column(JSONType, nullable=True)
    validated_by = Column(Uuid(as_uuid=True), nullable=False)
