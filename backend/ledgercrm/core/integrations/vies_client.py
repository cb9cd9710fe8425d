"""
EU VAT registry (VIES) client.
Speaks the checkVat SOAP operation over the registry HttpClient.
"""

from typing import Optional, Protocol, Dict, Any
from xml.etree import ElementTree
from xml.sax.saxutils import escape
from pydantic import BaseModel

from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import RegistryUnavailableError
from ledgercrm.core.integrations.http.http_client import HttpClient
from ledgercrm.core.logging import get_logger

logger = get_logger(__name__)

CHECK_VAT_NS = "urn:ec.europa.eu:taxud:vies:services:checkVat:types"
SOAP_ENV_NS = "http://schemas.xmlsoap.org/soap/envelope/"

SOAP_ENVELOPE = """<?xml version="1.0" encoding="UTF-8"?>
<soapenv:Envelope xmlns:soapenv="{soap_ns}" xmlns:urn="{vat_ns}">
   <soapenv:Header/>
   <soapenv:Body>
      <urn:checkVat>
         <urn:countryCode>{country_code}</urn:countryCode>
         <urn:vatNumber>{vat_number}</urn:vatNumber>
      </urn:checkVat>
   </soapenv:Body>
</soapenv:Envelope>"""


class ViesResponse(BaseModel):
    """Registry answer for one VAT number."""
    valid: bool
    country_code: str
    vat_number: str
    name: Optional[str] = None
    address: Optional[str] = None
    request_date: Optional[str] = None
    request_identifier: Optional[str] = None
    raw: Dict[str, Any] = {}


class VatRegistry(Protocol):
    """Anything able to answer a checkVat request."""

    async def check_vat(self, country_code: str, local_number: str) -> ViesResponse: ...


class ViesClient:
    """VIES checkVat client. One attempt per call; timeouts surface as RegistryUnavailableError."""

    def __init__(self, http_client: Optional[HttpClient] = None):
        self.http_client = http_client or HttpClient(
            "vies",
            base_url=settings.VIES_API_URL,
            timeout=settings.VIES_TIMEOUT_SECONDS,
        )

    async def close(self) -> None:
        await self.http_client.close()

    async def check_vat(self, country_code: str, local_number: str) -> ViesResponse:
        envelope = SOAP_ENVELOPE.format(
            soap_ns=SOAP_ENV_NS,
            vat_ns=CHECK_VAT_NS,
            country_code=escape(country_code),
            vat_number=escape(local_number),
        )
        body = await self.http_client.post_soap(envelope)
        response = parse_check_vat_response(body, country_code, local_number)
        logger.debug(
            f"VIES answered for {country_code}{local_number}: valid={response.valid}",
            extra={"country_code": country_code, "valid": response.valid},
        )
        return response


def _text(parent: ElementTree.Element, tag: str) -> Optional[str]:
    node = parent.find(f"{{{CHECK_VAT_NS}}}{tag}")
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    # VIES answers "---" when the member state does not disclose trader data
    return None if value in ("", "---") else value


def parse_check_vat_response(body: str, country_code: str, local_number: str) -> ViesResponse:
    """
    Parse a checkVat SOAP response.

    Raises:
        RegistryUnavailableError: On SOAP faults (e.g. MS_UNAVAILABLE) and unparseable bodies
    """
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise RegistryUnavailableError("vies", f"malformed response: {e}") from e

    fault = root.find(f".//{{{SOAP_ENV_NS}}}Fault")
    if fault is not None:
        fault_string = fault.findtext("faultstring") or "SOAP fault"
        raise RegistryUnavailableError("vies", fault_string)

    result = root.find(f".//{{{CHECK_VAT_NS}}}checkVatResponse")
    if result is None:
        raise RegistryUnavailableError("vies", "missing checkVatResponse")

    raw = {child.tag.split("}")[-1]: child.text for child in result}
    return ViesResponse(
        valid=(_text(result, "valid") or "").lower() == "true",
        country_code=_text(result, "countryCode") or country_code,
        vat_number=_text(result, "vatNumber") or local_number,
        name=_text(result, "name"),
        address=_text(result, "address"),
        request_date=_text(result, "requestDate"),
        request_identifier=_text(result, "requestIdentifier"),
        raw=raw,
    )
