"""
amtsbote.sepa.iban
~~~~~~~~~~~~~~~~~~
IBAN validation (ISO 13616 / ISO 7064 mod 97-10).

Validation: move country code and check digits behind the BBAN, expand
letters to two digits (A=10 … Z=35), and accept iff the resulting integer
is congruent to 1 modulo 97. Check-digit synthesis puts ``00`` in the
check slots and takes ``98 - (value mod 97)``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..identifiers import IdentifierError
from .bic import lookup_austrian_bank


IBAN_LENGTHS = {
    "AT": 20, "DE": 22, "CH": 21, "LI": 21, "BE": 16, "NL": 18, "FR": 27,
    "IT": 27, "ES": 24, "PT": 25, "GB": 22, "IE": 22, "LU": 20, "CZ": 24,
    "SK": 24, "HU": 28, "PL": 28, "SI": 19, "HR": 21,
}

_IBAN_RE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{1,30}$")

# country → slice of the IBAN holding the bank code
_BANK_CODE = {
    "AT": slice(4, 9),
    "DE": slice(4, 12),
    "CH": slice(4, 9),
    "LI": slice(4, 9),
}


def normalize_iban(iban: str) -> str:
    return "".join(iban.split()).upper()


def _expand(s: str) -> int:
    return int("".join(str(int(c, 36)) for c in s))


def mod97(iban: str) -> int:
    """Remainder of the rearranged, letter-expanded IBAN modulo 97."""
    return _expand(iban[4:] + iban[:4]) % 97


def validate_iban(iban: str) -> None:
    """Raise ``IdentifierError`` unless *iban* is structurally and arithmetically valid."""
    iban = normalize_iban(iban)
    if not _IBAN_RE.match(iban):
        raise IdentifierError("invalid IBAN format")
    expected = IBAN_LENGTHS.get(iban[:2])
    if expected is None:
        raise IdentifierError(f"unsupported IBAN country: {iban[:2]}")
    if len(iban) != expected:
        raise IdentifierError(f"invalid IBAN length for {iban[:2]} (expected {expected}, got {len(iban)})")
    if mod97(iban) != 1:
        raise IdentifierError("IBAN check digit validation failed")


def is_valid_iban(iban: str) -> bool:
    try:
        validate_iban(iban)
    except IdentifierError:
        return False
    return True


def calculate_check_digits(country_code: str, bban: str) -> str:
    """Return the full IBAN for *bban*: ``AT`` + ``61`` + BBAN."""
    country_code = country_code.upper()
    bban = normalize_iban(bban)
    check = 98 - _expand(bban + country_code + "00") % 97
    return f"{country_code}{check:02d}{bban}"


def format_iban(iban: str) -> str:
    """'AT611904300234573201' → 'AT61 1904 3002 3457 3201'"""
    iban = normalize_iban(iban)
    return " ".join(iban[i:i + 4] for i in range(0, len(iban), 4))


@dataclass
class IBANValidationResult:
    iban:         str
    valid:        bool
    country_code: str = ""
    bank_code:    str = ""
    bic:          str = ""
    bank_name:    str = ""
    error:        str = ""

    def to_dict(self) -> dict:
        return {
            "iban":         self.iban,
            "valid":        self.valid,
            "country_code": self.country_code,
            "bank_code":    self.bank_code,
            "bic":          self.bic,
            "bank_name":    self.bank_name,
            "error":        self.error,
        }


def validate_iban_details(iban: str) -> IBANValidationResult:
    """Validate and, where the country is known, extract the bank code and BIC."""
    result = IBANValidationResult(iban=normalize_iban(iban), valid=False)
    try:
        validate_iban(iban)
    except IdentifierError as exc:
        result.error = exc.message
        return result

    result.valid = True
    result.country_code = result.iban[:2]
    span = _BANK_CODE.get(result.country_code)
    if span:
        result.bank_code = result.iban[span]
    if result.country_code == "AT":
        bank = lookup_austrian_bank(result.bank_code)
        if bank:
            result.bic = bank.bic
            result.bank_name = bank.name
    return result


__all__ = [
    "IBANValidationResult",
    "IBAN_LENGTHS",
    "calculate_check_digits",
    "format_iban",
    "is_valid_iban",
    "mod97",
    "normalize_iban",
    "validate_iban",
    "validate_iban_details",
]
