"""
amtsbote.tax.zm
~~~~~~~~~~~~~~~
Zusammenfassende Meldung (ZM), the quarterly EU recapitulative statement.

One ``Position`` per EU business partner and delivery type:

    L  Lieferungen          intra-community supply of goods
    D  Dreiecksgeschäfte    triangular transactions
    S  Sonstige Leistungen  services

Austrian partners never belong in a ZM, and every amount is positive.
Amounts are cents in memory; ``Bemessungsgrundlage`` is written in EUR
with two decimals.

CSV input::

    partner_uid,country_code,delivery_type,amount
    DE123456789,DE,L,500000
"""

from __future__ import annotations

import csv
import io
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..exceptions import CodecError, DocumentValidationError
from ..models import DocumentStatus, ValidationResult
from ..money import format_major
from .. import xmlutil


GOODS      = "L"
TRIANGULAR = "D"
SERVICES   = "S"

DELIVERY_TYPES = {
    GOODS:      "Lieferungen",
    TRIANGULAR: "Dreiecksgeschäfte",
    SERVICES:   "Sonstige Leistungen",
}


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

@dataclass
class ZMEntry:
    """One partner line; ``amount`` is cents."""

    partner_uid:   str
    country_code:  str
    delivery_type: str
    amount:        int

    def validate(self, prefix: str = "") -> ValidationResult:
        result = ValidationResult()
        if not self.partner_uid:
            result.add("partner_uid", f"{prefix}partner_uid", "partner_uid is required")

        cc = (self.country_code or "").upper()
        if not cc:
            result.add("country_code", f"{prefix}country_code", "country_code is required")
        elif len(cc) != 2:
            result.add("country_code", f"{prefix}country_code", "country_code must be 2 characters")
        elif cc == "AT":
            result.add(
                "country_code", f"{prefix}country_code",
                "Austrian partners are not allowed in ZM (intra-community only)",
            )

        if self.amount <= 0:
            result.add("amount", f"{prefix}amount", "amount must be positive")
        if self.delivery_type not in DELIVERY_TYPES:
            result.add(
                "delivery_type", f"{prefix}delivery_type",
                "invalid delivery type (must be L, D, or S)",
            )
        return result

    def to_dict(self) -> dict:
        return {
            "partner_uid":   self.partner_uid,
            "country_code":  self.country_code,
            "delivery_type": self.delivery_type,
            "amount":        self.amount,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ZMEntry":
        return cls(
            partner_uid=str(d.get("partner_uid", "")).strip().upper(),
            country_code=str(d.get("country_code", "")).strip().upper(),
            delivery_type=str(d.get("delivery_type", "")).strip().upper(),
            amount=int(d.get("amount") or 0),
        )


# ---------------------------------------------------------------------------
# Statement
# ---------------------------------------------------------------------------

@dataclass
class ZM:
    year:         int
    quarter:      int
    entries:      list[ZMEntry] = field(default_factory=list)
    status:       DocumentStatus = DocumentStatus.DRAFT
    reference:    str = ""
    created_at:   datetime = field(default_factory=datetime.now)
    submitted_at: datetime | None = None

    @classmethod
    def build(cls, year: int, quarter: int, entries=()) -> "ZM":
        return cls(year=year, quarter=quarter, entries=list(entries))

    def add_entry(self, entry: ZMEntry) -> None:
        """Append *entry*; an invalid entry raises and is not added."""
        entry.validate().raise_if_invalid("ZM entry")
        self.entries.append(entry)

    def copy_as_draft(self) -> "ZM":
        return ZM(
            year=self.year, quarter=self.quarter,
            entries=[ZMEntry(**e.to_dict()) for e in self.entries],
        )

    @property
    def period_string(self) -> str:
        return f"Q{self.quarter}/{self.year}"

    @property
    def total_amount(self) -> int:
        return sum(e.amount for e in self.entries)

    def validate(self) -> ValidationResult:
        result = ValidationResult()
        if not 2000 <= self.year <= 2100:
            result.add("year", "year", "year must be between 2000 and 2100")
        if not 1 <= self.quarter <= 4:
            result.add("quarter", "quarter", "quarter must be between 1 and 4")
        if not self.entries:
            result.add("entries", "entries", "ZM must have at least one entry")
        for i, entry in enumerate(self.entries):
            result.merge(entry.validate(prefix=f"entries[{i}]."))
        return result

    # ------------------------------------------------------------------
    # XML
    # ------------------------------------------------------------------

    def to_xml(self) -> bytes:
        self.validate().raise_if_invalid("ZM")
        root = ET.Element("ZM")
        xmlutil.sub(root, "Jahr", self.year)
        xmlutil.sub(root, "Quartal", self.quarter)
        for e in self.entries:
            pos = xmlutil.sub(root, "Position")
            xmlutil.sub(pos, "PartnerUID", e.partner_uid)
            xmlutil.sub(pos, "LandCode", e.country_code)
            xmlutil.sub(pos, "Lieferart", e.delivery_type)
            xmlutil.sub(pos, "Bemessungsgrundlage", format_major(e.amount))
        return xmlutil.to_bytes(root)

    @classmethod
    def from_xml(cls, data: bytes | str) -> "ZM":
        root = xmlutil.parse(data, "ZM XML")
        if xmlutil.local(root.tag) != "ZM":
            raise CodecError(f"expected ZM, got {xmlutil.local(root.tag)}")
        entries = []
        for pos in xmlutil.children(root, "Position"):
            entries.append(ZMEntry(
                partner_uid=xmlutil.text(pos, "PartnerUID"),
                country_code=xmlutil.text(pos, "LandCode"),
                delivery_type=xmlutil.text(pos, "Lieferart"),
                amount=xmlutil.minor_text(pos, "Bemessungsgrundlage"),
            ))
        return cls(
            year=xmlutil.int_text(root, "Jahr"),
            quarter=xmlutil.int_text(root, "Quartal"),
            entries=entries,
        )

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "year":         self.year,
            "quarter":      self.quarter,
            "period":       self.period_string,
            "entries":      [e.to_dict() for e in self.entries],
            "total_amount": self.total_amount,
            "status":       str(self.status),
            "reference":    self.reference,
            "created_at":   self.created_at.isoformat(),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ZM":
        zm = cls(
            year=int(d.get("year", 0)),
            quarter=int(d.get("quarter", 0)),
            entries=[ZMEntry.from_dict(e) for e in d.get("entries", [])],
        )
        if d.get("status"):
            zm.status = DocumentStatus(d["status"])
        zm.reference = d.get("reference") or ""
        if d.get("created_at"):
            zm.created_at = datetime.fromisoformat(d["created_at"])
        if d.get("submitted_at"):
            zm.submitted_at = datetime.fromisoformat(d["submitted_at"])
        return zm

    def to_json(self, path: str | Path | None = None) -> str:
        raw = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        if path:
            Path(path).write_text(raw, encoding="utf-8")
        return raw

    def summary(self) -> str:
        W = 60
        lines = [
            "=" * W,
            f"  ZM {self.period_string}  ({len(self.entries)} Positionen)",
            "=" * W,
        ]
        for e in self.entries:
            lines.append(
                f"  {e.partner_uid:<16} {e.country_code}  {e.delivery_type}"
                f"  {format_major(e.amount):>14} EUR"
            )
        lines += [
            "─" * W,
            f"  Summe{'':<22}{format_major(self.total_amount):>14} EUR",
            f"  Status: {self.status}" + (f"  Referenz: {self.reference}" if self.reference else ""),
            "=" * W,
        ]
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def parse_zm_csv(data: str | bytes) -> list[ZMEntry]:
    """
    Parse ``partner_uid,country_code,delivery_type,amount`` rows (amount in
    cents) after a header row. Errors name the 1-based file line.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    rows = list(csv.reader(io.StringIO(data)))
    if len(rows) < 2:
        raise CodecError("CSV must have header and at least one data row")

    entries = []
    for lineno, row in enumerate(rows[1:], start=2):
        if not any(c.strip() for c in row):
            continue
        if len(row) < 4:
            raise CodecError(f"line {lineno}: expected 4 fields, got {len(row)}")
        try:
            amount = int(row[3].strip())
        except ValueError as exc:
            raise CodecError(f"line {lineno}: amount must be an integer (cents)", cause=exc) from exc

        entry = ZMEntry(
            partner_uid=row[0].strip(),
            country_code=row[1].strip().upper(),
            delivery_type=row[2].strip().upper(),
            amount=amount,
        )
        result = entry.validate(prefix=f"line[{lineno}].")
        if not result.valid:
            raise DocumentValidationError(f"line {lineno}: {result.errors[0].message}", result=result)
        entries.append(entry)
    return entries


__all__ = [
    "DELIVERY_TYPES",
    "GOODS",
    "SERVICES",
    "TRIANGULAR",
    "ZM",
    "ZMEntry",
    "parse_zm_csv",
]
