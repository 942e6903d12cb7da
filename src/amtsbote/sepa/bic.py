"""
amtsbote.sepa.bic
~~~~~~~~~~~~~~~~~
BIC format check and a directory of common Austrian banks keyed by
Bankleitzahl (BLZ, the 5-digit bank code inside an Austrian IBAN).

The directory is a selection, not the full OeNB register; a miss means
"unknown", never "invalid".
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..identifiers import IdentifierError


_BIC_RE = re.compile(r"^[A-Z]{4}[A-Z]{2}[A-Z0-9]{2}([A-Z0-9]{3})?$")


@dataclass(frozen=True)
class AustrianBank:
    bank_code: str
    bic:       str
    name:      str

    def to_dict(self) -> dict:
        return {"bank_code": self.bank_code, "bic": self.bic, "name": self.name}


AUSTRIAN_BANKS: dict[str, AustrianBank] = {b.bank_code: b for b in (
    # major banks
    AustrianBank("11000", "BKAUATWW", "Bank Austria"),
    AustrianBank("12000", "GIBAATWW", "Erste Bank"),
    AustrianBank("14000", "BAWAATWW", "BAWAG PSK"),
    AustrianBank("14900", "BAWAATWW", "BAWAG PSK"),
    AustrianBank("15000", "OBKLAT2L", "Oberbank"),
    AustrianBank("16000", "BTVAAT22", "BTV - Bank für Tirol und Vorarlberg"),
    AustrianBank("17000", "BFKKAT2K", "BKS Bank"),
    AustrianBank("18000", "VBOEATWW", "Volksbank"),
    AustrianBank("19043", "BKAUATWW", "Bank Austria (Landesdirektion)"),
    # Raiffeisen
    AustrianBank("32000", "RLNWATWW", "Raiffeisen NÖ-Wien"),
    AustrianBank("33000", "RLNWATWW", "Raiffeisenlandesbank NÖ-Wien"),
    AustrianBank("34000", "RZOOAT2L", "Raiffeisenlandesbank OÖ"),
    AustrianBank("35000", "RVSAAT2S", "Raiffeisenlandesbank Salzburg"),
    AustrianBank("36000", "RZTIAT22", "Raiffeisenlandesbank Tirol"),
    AustrianBank("37000", "RVVGAT2B", "Raiffeisenlandesbank Vorarlberg"),
    AustrianBank("38000", "RZSTAT2G", "Raiffeisenlandesbank Steiermark"),
    AustrianBank("39000", "RZKTAT2K", "Raiffeisenlandesbank Kärnten"),
    # Sparkassen
    AustrianBank("20111", "GIBAATWWXXX", "Erste Bank der oesterreichischen Sparkassen"),
    AustrianBank("20205", "ASPKAT2LXXX", "Allgemeine Sparkasse OÖ"),
    AustrianBank("20315", "STSPAT2GXXX", "Steiermärkische Sparkasse"),
    AustrianBank("20404", "SBGSAT2SXXX", "Salzburger Sparkasse"),
    AustrianBank("20502", "SPIHAT22XXX", "Tiroler Sparkasse"),
    # others
    AustrianBank("19200", "INGBATWW", "ING-DiBa Austria"),
    AustrianBank("19500", "EASYATW1", "easybank"),
    AustrianBank("19600", "RZBAATWW", "RZB - Raiffeisen Zentralbank"),
    AustrianBank("60000", "OPSKATWW", "Österreichische Postsparkasse (legacy)"),
)}


def validate_bic(bic: str) -> None:
    """4 bank letters, 2 country letters, 2 location chars, optional 3 branch chars."""
    if not _BIC_RE.match(bic.strip().upper()):
        raise IdentifierError(f"invalid BIC format: {bic!r}")


def is_valid_bic(bic: str) -> bool:
    return bool(_BIC_RE.match(bic.strip().upper()))


def lookup_austrian_bank(bank_code: str) -> AustrianBank | None:
    """Look up a BLZ; shorter codes are zero-padded to five digits."""
    code = bank_code.strip()
    return AUSTRIAN_BANKS.get(code) or AUSTRIAN_BANKS.get(code.zfill(5))


def lookup_bank_by_iban(iban: str) -> AustrianBank | None:
    iban = "".join(iban.split()).upper()
    if len(iban) < 9 or not iban.startswith("AT"):
        return None
    return lookup_austrian_bank(iban[4:9])


def derive_bic_from_iban(iban: str) -> str:
    """BIC for an Austrian IBAN whose bank is in the directory, else ``""``."""
    bank = lookup_bank_by_iban(iban)
    return bank.bic if bank else ""


__all__ = [
    "AUSTRIAN_BANKS",
    "AustrianBank",
    "derive_bic_from_iban",
    "is_valid_bic",
    "lookup_austrian_bank",
    "lookup_bank_by_iban",
    "validate_bic",
]
