"""
Whitelist verification Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import date, datetime
from uuid import UUID

from ledgercrm.models.whitelist_verification import WhitelistStatus


class WhitelistVerifyRequest(BaseModel):
    """Verify a NIP, optionally with a bank account and as of a past date."""
    nip: str = Field(..., min_length=10, max_length=16)
    bank_account: Optional[str] = Field(None, max_length=40)
    verification_date: Optional[date] = None
    client_id: Optional[UUID] = None


class WhitelistBatchVerifyRequest(BaseModel):
    """Verify up to 100 entries."""
    entries: List[WhitelistVerifyRequest] = Field(..., min_length=1, max_length=100)


class WhitelistVerificationResult(BaseModel):
    """Outcome of a whitelist verification as returned to callers and stored in the cache."""
    nip: str
    bank_account: Optional[str] = None
    verification_date: date
    historical: bool = False
    status: WhitelistStatus
    nip_valid: bool
    account_valid: Optional[bool] = None
    subject_name: Optional[str] = None
    registration_status: Optional[str] = None
    registered_accounts: List[str] = Field(default_factory=list)
    request_identifier: Optional[str] = None
    verified_at: datetime
    record_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
    message: Optional[str] = None


class WhitelistBatchVerificationResponse(BaseModel):
    """Batch results in input order, plus a per-status summary."""
    results: List[WhitelistVerificationResult]
    summary: Dict[str, int]
