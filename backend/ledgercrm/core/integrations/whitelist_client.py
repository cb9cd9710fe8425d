"""
Polish VAT taxpayer whitelist ("Biała Lista") client for the MF REST API.
"""

from datetime import date
from typing import Optional, Protocol, List, Dict, Any
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import RegistryUnavailableError
from ledgercrm.core.integrations.http.http_client import HttpClient
from ledgercrm.core.logging import get_logger

logger = get_logger(__name__)


class WhitelistSubject(BaseModel):
    """Taxpayer entry as returned by the registry."""
    name: Optional[str] = None
    nip: Optional[str] = None
    status_vat: Optional[str] = Field(None, alias="statusVat")
    account_numbers: List[str] = Field(default_factory=list, alias="accountNumbers")

    class Config:
        populate_by_name = True


class WhitelistLookup(BaseModel):
    """Registry answer for one NIP on one date."""
    subject: Optional[WhitelistSubject] = None
    request_id: Optional[str] = None
    request_date_time: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class WhitelistRegistry(Protocol):
    """Anything able to look up a NIP in the whitelist as of a date."""

    async def search_nip(self, nip: str, as_of: date) -> WhitelistLookup: ...


class WhitelistClient:
    """MF whitelist client. One attempt per call; timeouts surface as RegistryUnavailableError."""

    def __init__(self, http_client: Optional[HttpClient] = None):
        self.http_client = http_client or HttpClient(
            "whitelist",
            base_url=settings.WHITELIST_API_URL,
            timeout=settings.WHITELIST_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        await self.http_client.close()

    async def search_nip(self, nip: str, as_of: date) -> WhitelistLookup:
        payload = await self.http_client.get_json(f"/search/nip/{nip}", params={"date": as_of.isoformat()})
        return parse_search_response(payload)


def parse_search_response(payload: Any) -> WhitelistLookup:
    """
    Parse a `/search/nip` JSON body.

    Raises:
        RegistryUnavailableError: The body does not have the documented shape
    """
    result = payload.get("result") if isinstance(payload, dict) else None
    if not isinstance(result, dict):
        raise RegistryUnavailableError("whitelist", "missing result in response")
    subject = result.get("subject")
    try:
        return WhitelistLookup(
            subject=WhitelistSubject.model_validate(subject) if subject else None,
            request_id=result.get("requestId"),
            request_date_time=result.get("requestDateTime"),
            raw=payload,
        )
    except PydanticValidationError as e:
        raise RegistryUnavailableError("whitelist", f"unexpected subject shape: {e.error_count()} errors") from e
