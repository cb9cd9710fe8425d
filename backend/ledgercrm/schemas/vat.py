"""
VAT validation Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from uuid import UUID

from ledgercrm.models.vat_validation import VatStatus


class VatValidateRequest(BaseModel):
    """Validate one full VAT number (country prefix included, e.g. PL5252248481)."""
    vat_number: str = Field(..., min_length=3, max_length=20)
    client_id: Optional[UUID] = None


class VatBatchValidateRequest(BaseModel):
    """Validate up to 100 VAT numbers."""
    vat_numbers: List[str] = Field(..., min_length=1, max_length=100)


class VatValidationResult(BaseModel):
    """Outcome of a VAT validation as returned to callers and stored in the cache."""
    vat_number: str
    country_code: Optional[str] = None
    valid: bool
    status: VatStatus
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    request_identifier: Optional[str] = None
    validated_at: datetime
    cache_expires_at: Optional[datetime] = None
    record_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    message: Optional[str] = None


class VatBatchValidationResponse(BaseModel):
    """Batch results in input order, plus a per-status summary."""
    results: List[VatValidationResult]
    summary: Dict[str, int]


class VatValidationRecordResponse(BaseModel):
    """Schema for a persisted VAT validation record."""
    id: UUID
    client_id: Optional[UUID] = None
    vat_number: str
    country_code: str
    valid: bool
    status: VatStatus
    company_name: Optional[str] = None
    company_address: Optional[str] = None
    request_identifier: Optional[str] = None
    validated_at: datetime
    cache_expires_at: datetime

    class Config:
        from_attributes = True


class VatRecordLinkRequest(BaseModel):
    """Link a stored validation record to a client."""
    client_id: UUID


class ClientVatStatus(BaseModel):
    """A client's VAT standing, taken from its latest linked validation."""
    client_id: UUID
    vat_number: Optional[str] = None
    country_code: Optional[str] = None
    status: Optional[VatStatus] = None
    valid: bool = False
    company_name: Optional[str] = None
    validated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_expired: bool = True
    record_id: Optional[UUID] = None
