"""
Tests for VAT number, NIP and bank account helpers.
"""

import pytest

from ledgercrm.utils.tax_identifiers import (
    is_nip_shape,
    is_valid_nip_checksum,
    is_valid_vat_format,
    normalize_bank_account,
    normalize_nip,
    normalize_vat_number,
    split_vat_number,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("PL5252248481", ("PL", "5252248481")),
        ("pl 525-224-84-81", ("PL", "5252248481")),
        ("DE.123.456.789", ("DE", "123456789")),
        ("IE1234567WA", ("IE", "1234567WA")),
    ],
)
def test_split_vat_number(raw, expected):
    assert split_vat_number(raw) == expected


@pytest.mark.parametrize("raw", ["", "PL", "XX123456789", "12PL3456"])
def test_split_rejects_unknown_prefixes(raw):
    assert split_vat_number(raw) is None


@pytest.mark.parametrize(
    "country, number, valid",
    [
        ("PL", "5252248481", True),
        ("PL", "525224848", False),
        ("DE", "123456789", True),
        ("AT", "U12345678", True),
        ("AT", "12345678", False),
        ("NL", "123456789B01", True),
        ("FR", "XX123456789", True),
    ],
)
def test_vat_formats(country, number, valid):
    assert is_valid_vat_format(country, number) is valid


def test_normalize_vat_number_keeps_irish_symbols():
    assert normalize_vat_number("ie 1+23456a") == "IE1+23456A"


@pytest.mark.parametrize(
    "nip, valid",
    [
        ("5252248481", True),
        ("1234563218", True),
        ("5252248482", False),
        ("1234567890", False),  # remainder 10 never matches
        ("123456321", False),
    ],
)
def test_nip_checksum(nip, valid):
    assert is_valid_nip_checksum(nip) is valid


def test_normalize_nip():
    assert normalize_nip("PL 525-224-84-81") == "5252248481"
    assert is_nip_shape("5252248481")
    assert not is_nip_shape("52522484")


def test_normalize_bank_account():
    assert normalize_bank_account("PL61 1090 1014 0000 0712 1981 2874") == "61109010140000071219812874"
    assert normalize_bank_account("--") is None
    assert normalize_bank_account(None) is None
