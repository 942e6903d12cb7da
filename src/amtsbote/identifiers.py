"""
amtsbote.identifiers
~~~~~~~~~~~~~~~~~~~~
Validators for Austrian and EU identifiers.

SV-Nummer (social-security number)
----------------------------------
Ten digits: a 4-digit serial followed by the birth date ``DDMMYY``.
The weighted sum of digits 1-9 (weights 3,7,9,5,8,4,2,1,6) modulo 11 must
equal digit 10, so the last year digit doubles as the check digit. A sum
of 10 can never match and such numbers are not issued.
The display form groups the number as ``NNNN DDMMYY``.

FN (Firmenbuchnummer)
---------------------
``FN`` + 1-9 digits + one lowercase check letter, e.g. ``FN123456a``.

UID (VAT identifier)
--------------------
Country prefix + a country-specific pattern. An unknown prefix is a hard
failure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date

from .exceptions import AmtsboteError


class IdentifierError(AmtsboteError, ValueError):
    """An identifier failed its format or checksum rule."""

    kind = "validation"


# ---------------------------------------------------------------------------
# SV-Nummer
# ---------------------------------------------------------------------------

SV_WEIGHTS = (3, 7, 9, 5, 8, 4, 2, 1, 6)

_SV_RE = re.compile(r"^\d{10}$")


def normalize_sv_nummer(value: str) -> str:
    """Inverse of ``format_sv_nummer``: strips the grouping blank."""
    return "".join(value.split())


def sv_check_digit(first_nine: str) -> int:
    return sum(int(d) * w for d, w in zip(first_nine, SV_WEIGHTS)) % 11


def validate_sv_nummer(sv_nummer: str) -> None:
    """Raise ``IdentifierError`` unless *sv_nummer* is well-formed."""
    if not _SV_RE.match(sv_nummer or ""):
        raise IdentifierError("invalid SV-Nummer format (expected 10 digits)")
    if sv_check_digit(sv_nummer[:9]) != int(sv_nummer[9]):
        raise IdentifierError("SV-Nummer check digit does not match")


def sv_nummer_birth_date(sv_nummer: str, *, today: date | None = None) -> date:
    """
    Extract the embedded birth date.

    The two-digit year resolves to the current century unless that would lie
    in the future, in which case the previous century is used.
    """
    validate_sv_nummer(sv_nummer)
    today = today or date.today()
    day, month, yy = int(sv_nummer[4:6]), int(sv_nummer[6:8]), int(sv_nummer[8:10])
    year = (today.year // 100) * 100 + yy
    if year > today.year:
        year -= 100
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise IdentifierError(f"SV-Nummer embeds an impossible date: {exc}") from exc


def validate_sv_nummer_with_birth_date(
    sv_nummer: str, birth_date: date, *, today: date | None = None,
) -> None:
    embedded = sv_nummer_birth_date(sv_nummer, today=today)
    if embedded != birth_date:
        raise IdentifierError(
            f"SV-Nummer birth date {embedded:%d.%m.%Y} does not match {birth_date:%d.%m.%Y}"
        )


def format_sv_nummer(sv_nummer: str) -> str:
    """'1234150189' → '1234 150189'"""
    if len(sv_nummer) != 10:
        return sv_nummer
    return f"{sv_nummer[:4]} {sv_nummer[4:]}"


# ---------------------------------------------------------------------------
# Firmenbuchnummer
# ---------------------------------------------------------------------------

_FN_RE = re.compile(r"^FN\d{1,9}[a-z]$")


def normalize_fn(fn: str) -> str:
    """' fn 123456 A ' → 'FN123456a'"""
    s = "".join(fn.split())
    if len(s) < 3:
        return s
    return s[:2].upper() + s[2:-1] + s[-1].lower()


def validate_fn(fn: str) -> None:
    if not _FN_RE.match(fn or ""):
        raise IdentifierError(f"invalid Firmenbuch number format: {fn!r}")


# ---------------------------------------------------------------------------
# UID
# ---------------------------------------------------------------------------

UID_PATTERNS: dict[str, re.Pattern] = {
    "AT": re.compile(r"^ATU\d{8}$"),
    "DE": re.compile(r"^DE\d{9}$"),
    "IT": re.compile(r"^IT\d{11}$"),
    "FR": re.compile(r"^FR[A-Z0-9]{2}\d{9}$"),
    "NL": re.compile(r"^NL\d{9}B\d{2}$"),
    "BE": re.compile(r"^BE0?\d{9,10}$"),
    "ES": re.compile(r"^ES[A-Z0-9]\d{7}[A-Z0-9]$"),
    "GB": re.compile(r"^GB\d{9}(\d{3})?$"),
    "PL": re.compile(r"^PL\d{10}$"),
    "CH": re.compile(r"^CHE\d{9}$"),
}


@dataclass
class UIDFormatResult:
    valid:        bool
    country_code: str = ""
    error:        str = ""

    def to_dict(self) -> dict:
        return {"valid": self.valid, "country_code": self.country_code, "error": self.error}


def normalize_uid(uid: str) -> str:
    return "".join(uid.split()).upper()


def validate_uid_format(uid: str) -> UIDFormatResult:
    uid = normalize_uid(uid)
    if len(uid) < 4:
        return UIDFormatResult(False, error="UID too short")

    country = uid[:2]
    pattern = UID_PATTERNS.get(country)
    if pattern is None:
        return UIDFormatResult(False, country, f"unsupported country code: {country}")
    if not pattern.match(uid):
        return UIDFormatResult(False, country, f"invalid format for country {country}")
    return UIDFormatResult(True, country)


# ---------------------------------------------------------------------------
# Portal account identifiers
# ---------------------------------------------------------------------------

_TID_RE = re.compile(r"^\d{12}$")
_DGNR_RE = re.compile(r"^\d{8}$")


def validate_tid(tid: str) -> None:
    if not _TID_RE.match(tid or ""):
        raise IdentifierError("Teilnehmer-ID must be exactly 12 digits")


def validate_dienstgeber_nr(nr: str) -> None:
    if not _DGNR_RE.match(nr or ""):
        raise IdentifierError("Dienstgeber-Nr must be exactly 8 digits")


__all__ = [
    "IdentifierError",
    "SV_WEIGHTS",
    "UID_PATTERNS",
    "UIDFormatResult",
    "format_sv_nummer",
    "normalize_fn",
    "normalize_sv_nummer",
    "normalize_uid",
    "sv_check_digit",
    "sv_nummer_birth_date",
    "validate_dienstgeber_nr",
    "validate_fn",
    "validate_sv_nummer",
    "validate_sv_nummer_with_birth_date",
    "validate_tid",
    "validate_uid_format",
]
