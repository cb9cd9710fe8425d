"""
Tax identifier helpers: EU VAT number shapes, Polish NIP checksum, bank account normalization.
"""

import re
from typing import Optional, Tuple

# Local-number shape per EU member state (country prefix stripped)
VAT_PATTERNS = {
    "AT": re.compile(r"^U\d{8}$"),                              # Austria
    "BE": re.compile(r"^[01]\d{9}$"),                           # Belgium
    "BG": re.compile(r"^\d{9,10}$"),                            # Bulgaria
    "CY": re.compile(r"^\d{8}[A-Z]$"),                          # Cyprus
    "CZ": re.compile(r"^\d{8,10}$"),                            # Czech Republic
    "DE": re.compile(r"^\d{9}$"),                               # Germany
    "DK": re.compile(r"^\d{8}$"),                               # Denmark
    "EE": re.compile(r"^\d{9}$"),                               # Estonia
    "EL": re.compile(r"^\d{9}$"),                               # Greece
    "ES": re.compile(r"^[A-Z0-9]\d{7}[A-Z0-9]$"),               # Spain
    "FI": re.compile(r"^\d{8}$"),                               # Finland
    "FR": re.compile(r"^[A-Z0-9]{2}\d{9}$"),                    # France
    "HR": re.compile(r"^\d{11}$"),                              # Croatia
    "HU": re.compile(r"^\d{8}$"),                               # Hungary
    "IE": re.compile(r"^(\d{7}[A-Z]{1,2}|\d[A-Z+*]\d{5}[A-Z])$"),  # Ireland
    "IT": re.compile(r"^\d{11}$"),                              # Italy
    "LT": re.compile(r"^(\d{9}|\d{12})$"),                      # Lithuania
    "LU": re.compile(r"^\d{8}$"),                               # Luxembourg
    "LV": re.compile(r"^\d{11}$"),                              # Latvia
    "MT": re.compile(r"^\d{8}$"),                               # Malta
    "NL": re.compile(r"^\d{9}B\d{2}$"),                         # Netherlands
    "PL": re.compile(r"^\d{10}$"),                              # Poland
    "PT": re.compile(r"^\d{9}$"),                               # Portugal
    "RO": re.compile(r"^\d{2,10}$"),                            # Romania
    "SE": re.compile(r"^\d{12}$"),                              # Sweden
    "SI": re.compile(r"^\d{8}$"),                               # Slovenia
    "SK": re.compile(r"^\d{10}$"),                              # Slovakia
    "XI": re.compile(r"^(\d{9}|\d{12}|GD\d{3}|HA\d{3})$"),      # Northern Ireland
}

NIP_WEIGHTS = (6, 5, 7, 2, 3, 4, 5, 6, 7)


def normalize_vat_number(value: str) -> str:
    """Upper-case and drop separators (spaces, dots, dashes)."""
    return re.sub(r"[^A-Z0-9+*]", "", (value or "").upper())


def split_vat_number(value: str) -> Optional[Tuple[str, str]]:
    """
    Split a full VAT number into (country_code, local_number).

    Returns None when the value has no two-letter prefix of a supported country.
    Local numbers may legitimately contain '+' or '*' (Ireland).
    """
    normalized = normalize_vat_number(value)
    if len(normalized) < 3:
        return None
    country_code, local_number = normalized[:2], normalized[2:]
    if country_code not in VAT_PATTERNS:
        return None
    return country_code, local_number


def is_valid_vat_format(country_code: str, local_number: str) -> bool:
    """Check a local VAT number against its country's pattern."""
    pattern = VAT_PATTERNS.get(country_code)
    return bool(pattern and pattern.match(local_number))


def normalize_nip(value: str) -> str:
    """Strip separators and an optional PL prefix from a NIP."""
    cleaned = re.sub(r"[\s-]", "", (value or "").upper())
    if cleaned.startswith("PL"):
        cleaned = cleaned[2:]
    return cleaned


def is_nip_shape(nip: str) -> bool:
    """True when the NIP is exactly ten digits."""
    return bool(re.fullmatch(r"\d{10}", nip or ""))


def is_valid_nip_checksum(nip: str) -> bool:
    """
    Validate the NIP check digit.

    The first nine digits are weighted by NIP_WEIGHTS; the sum modulo 11 must
    equal the tenth digit. A remainder of 10 can never match and is invalid.
    """
    if not is_nip_shape(nip):
        return False
    total = sum(int(digit) * weight for digit, weight in zip(nip[:9], NIP_WEIGHTS))
    return total % 11 == int(nip[9])


def normalize_bank_account(value: Optional[str]) -> Optional[str]:
    """Reduce a bank account (IBAN or NRB) to its digits only."""
    if value is None:
        return None
    digits = re.sub(r"\D", "", value)
    return digits or None
