"""
amtsbote.tax.uva
~~~~~~~~~~~~~~~~
Umsatzsteuervoranmeldung (UVA), the Austrian advance VAT return (form U30).

Kennzahlen
----------
Every line item ("Kennzahl", KZ) is an integer amount in cents.

    KZ017  taxable at 20 %           KZ060  Vorsteuer (input tax)
    KZ018  taxable at 10 %           KZ065  import VAT as input tax
    KZ019  taxable at 13 %           KZ066  input tax from IC acquisitions
    KZ022  import VAT (EUSt)         KZ070  other adjustments
    KZ029  IC acquisitions at 20 %

Zahllast / Gutschrift (KZ095)::

    KZ095 = KZ017·20% + KZ018·10% + KZ019·13% + KZ022 + KZ029·20%
            − (KZ060 + KZ065 + KZ066 + KZ070)

  > 0  → payment due
  < 0  → refund (Gutschrift)

Each percentage term is truncated to whole cents on its own. KZ095 is the
only line that may be negative; a stored KZ095 that disagrees with the
formula is rejected by ``validate()``.

Usage::

    uva = UVA.build(2025, month=1, kz017=80000, kz060=1600)
    uva.validate().raise_if_invalid()
    xml = uva.to_xml()
    print(uva.summary())
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..exceptions import CodecError
from ..models import DocumentStatus, ValidationResult
from ..money import format_major
from .. import xmlutil


UVA_NS = "http://www.bmf.gv.at/steuern/fon/u30"

MONTHLY   = "monthly"
QUARTERLY = "quarterly"

# input line items, in the order they appear on the form and in the XML
KENNZAHLEN = (
    "kz000", "kz001", "kz011", "kz017", "kz018", "kz019", "kz020",
    "kz022", "kz029", "kz060", "kz065", "kz066", "kz070",
)

KZ_LABELS = {
    "kz000": "Gesamtbetrag der Lieferungen",
    "kz001": "Innergemeinschaftliche Lieferungen",
    "kz011": "Steuerfrei ohne Vorsteuerabzug",
    "kz017": "Normalsteuersatz 20 %",
    "kz018": "Ermäßigter Steuersatz 10 %",
    "kz019": "Ermäßigter Steuersatz 13 %",
    "kz020": "Sonstige Steuersätze",
    "kz022": "Einfuhrumsatzsteuer",
    "kz029": "Innergemeinschaftliche Erwerbe",
    "kz060": "Vorsteuer",
    "kz065": "Einfuhrumsatzsteuer als Vorsteuer",
    "kz066": "Vorsteuern aus ig. Erwerben",
    "kz070": "Sonstige Berichtigungen",
    "kz095": "Zahllast / Gutschrift",
}


# ---------------------------------------------------------------------------
# Period
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UVAPeriod:
    """A month (1-12) or a quarter (1-4)."""

    type:  str
    value: int

    def __str__(self) -> str:
        if self.type == QUARTERLY:
            return f"Q{self.value}"
        return f"{self.value:02d}"


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

@dataclass
class UVA:
    """One advance VAT return. All KZ fields are cents."""

    year:         int
    period:       UVAPeriod
    kz000:        int = 0
    kz001:        int = 0
    kz011:        int = 0
    kz017:        int = 0
    kz018:        int = 0
    kz019:        int = 0
    kz020:        int = 0
    kz022:        int = 0
    kz029:        int = 0
    kz060:        int = 0
    kz065:        int = 0
    kz066:        int = 0
    kz070:        int = 0
    kz095:        int = 0
    steuernummer: str = ""
    # lifecycle
    status:       DocumentStatus = DocumentStatus.DRAFT
    reference:    str = ""
    created_at:   datetime = field(default_factory=datetime.now)
    submitted_at: datetime | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        year:    int,
        *,
        month:   int | None = None,
        quarter: int | None = None,
        kz095:   int | None = None,
        steuernummer: str = "",
        **kennzahlen: int,
    ) -> "UVA":
        """
        Build a draft return; KZ095 is derived when not supplied.

        At most one of *month* / *quarter* may be given. Unknown keyword
        names, or both a month and a quarter, raise ``TypeError``.
        """
        unknown = set(kennzahlen) - set(KENNZAHLEN)
        if unknown:
            raise TypeError(f"unknown Kennzahl(en): {', '.join(sorted(unknown))}")
        if month is not None and quarter is not None:
            raise TypeError("pass either month or quarter, not both")
        if quarter is not None:
            period = UVAPeriod(QUARTERLY, quarter)
        else:
            period = UVAPeriod(MONTHLY, month or 0)

        uva = cls(year=year, period=period, steuernummer=steuernummer,
                  **{k: int(v) for k, v in kennzahlen.items()})
        uva.kz095 = uva.calculate_kz095() if kz095 is None else int(kz095)
        return uva

    def copy_as_draft(self) -> "UVA":
        """A fresh draft with the same figures, e.g. to correct a rejected return."""
        return UVA(
            year=self.year, period=self.period, steuernummer=self.steuernummer,
            kz095=self.kz095, **self.kennzahlen(),
        )

    # ------------------------------------------------------------------
    # Figures
    # ------------------------------------------------------------------

    def kennzahlen(self) -> dict[str, int]:
        return {k: getattr(self, k) for k in KENNZAHLEN}

    @property
    def output_tax(self) -> int:
        return (
            self.kz017 * 20 // 100
            + self.kz018 * 10 // 100
            + self.kz019 * 13 // 100
            + self.kz022
            + self.kz029 * 20 // 100
        )

    @property
    def input_tax(self) -> int:
        return self.kz060 + self.kz065 + self.kz066 + self.kz070

    def calculate_kz095(self) -> int:
        """Tax payable (positive) or refund (negative) in cents."""
        return self.output_tax - self.input_tax

    @property
    def period_string(self) -> str:
        return f"{self.period}/{self.year}"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        result = ValidationResult()

        if not 2000 <= self.year <= 2100:
            result.add("year", "year", "year must be between 2000 and 2100")

        if self.period.type == MONTHLY:
            if not 1 <= self.period.value <= 12:
                result.add("period", "period.value", "month must be between 1 and 12")
        elif self.period.type == QUARTERLY:
            if not 1 <= self.period.value <= 4:
                result.add("period", "period.value", "quarter must be between 1 and 4")
        else:
            result.add("period_type", "period.type", "period type must be 'monthly' or 'quarterly'")

        for name in KENNZAHLEN:
            if getattr(self, name) < 0:
                result.add("negative_amount", name, f"{name.upper()} must be non-negative")

        expected = self.calculate_kz095()
        if self.kz095 != expected:
            result.add(
                "kz095_mismatch", "kz095",
                f"KZ095 is {self.kz095} but the Kennzahlen give {expected}",
            )
        return result

    # ------------------------------------------------------------------
    # XML
    # ------------------------------------------------------------------

    def to_xml(self) -> bytes:
        """Serialize to the U30 document; raises if the return is invalid."""
        self.validate().raise_if_invalid("UVA")

        root = ET.Element("Umsatzsteuervoranmeldung", {"xmlns": UVA_NS})
        xmlutil.sub_if(root, "Steuernummer", self.steuernummer)
        zeitraum = xmlutil.sub(root, "Zeitraum")
        xmlutil.sub(zeitraum, "Jahr", self.year)
        if self.period.type == MONTHLY:
            xmlutil.sub(zeitraum, "Monat", f"{self.period.value:02d}")
        else:
            xmlutil.sub(zeitraum, "Quartal", self.period.value)

        kz = xmlutil.sub(root, "Kennzahlen")
        for name in (*KENNZAHLEN, "kz095"):
            value = getattr(self, name)
            if value:
                xmlutil.sub(kz, name.upper(), value)
        return xmlutil.to_bytes(root)

    @classmethod
    def from_xml(cls, data: bytes | str) -> "UVA":
        root = xmlutil.parse(data, "UVA XML")
        if xmlutil.local(root.tag) != "Umsatzsteuervoranmeldung":
            raise CodecError(f"expected Umsatzsteuervoranmeldung, got {xmlutil.local(root.tag)}")

        zeitraum = xmlutil.child(root, "Zeitraum")
        monat = xmlutil.text(zeitraum, "Monat")
        if monat:
            period = UVAPeriod(MONTHLY, xmlutil.int_text(zeitraum, "Monat"))
        else:
            period = UVAPeriod(QUARTERLY, xmlutil.int_text(zeitraum, "Quartal"))

        kz = xmlutil.child(root, "Kennzahlen")
        values = {name: xmlutil.int_text(kz, name.upper()) for name in (*KENNZAHLEN, "kz095")}
        return cls(
            year=xmlutil.int_text(zeitraum, "Jahr"),
            period=period,
            steuernummer=xmlutil.text(root, "Steuernummer"),
            **values,
        )

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        d = {
            "year":         self.year,
            "period_type":  self.period.type,
            "period":       self.period.value,
            "steuernummer": self.steuernummer,
        }
        d.update(self.kennzahlen())
        d["kz095"] = self.kz095
        d.update({
            "status":       str(self.status),
            "reference":    self.reference,
            "created_at":   self.created_at.isoformat(),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        })
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "UVA":
        """
        Accepts the ``to_dict`` shape as well as the short input form
        ``{"year": 2025, "month": 1, "kz017": 80000, ...}``.
        """
        if "period_type" in d:
            period = UVAPeriod(d["period_type"], int(d.get("period", 0)))
        elif d.get("quarter"):
            period = UVAPeriod(QUARTERLY, int(d["quarter"]))
        else:
            period = UVAPeriod(MONTHLY, int(d.get("month", 0)))

        uva = cls(
            year=int(d.get("year", 0)),
            period=period,
            steuernummer=d.get("steuernummer", ""),
            **{k: int(d.get(k) or 0) for k in KENNZAHLEN},
        )
        uva.kz095 = uva.calculate_kz095() if d.get("kz095") is None else int(d["kz095"])
        if d.get("status"):
            uva.status = DocumentStatus(d["status"])
        uva.reference = d.get("reference") or ""
        if d.get("created_at"):
            uva.created_at = datetime.fromisoformat(d["created_at"])
        if d.get("submitted_at"):
            uva.submitted_at = datetime.fromisoformat(d["submitted_at"])
        return uva

    def to_json(self, path: str | Path | None = None) -> str:
        raw = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        if path:
            Path(path).write_text(raw, encoding="utf-8")
        return raw

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def summary(self) -> str:
        W = 56
        div = "─" * W

        def eur(cents: int) -> str:
            return f"{format_major(cents):>12} EUR"

        if self.kz095 > 0:
            verdict = "← Zahllast (payment due)"
        elif self.kz095 < 0:
            verdict = "← Gutschrift (refund)"
        else:
            verdict = "(break-even)"

        lines = [
            "=" * W,
            f"  UVA {self.period_string}"
            + (f"  St.Nr. {self.steuernummer}" if self.steuernummer else ""),
            "=" * W,
        ]
        shown = [k for k in KENNZAHLEN if getattr(self, k)]
        for k in shown:
            lines.append(f"  {k.upper()} {KZ_LABELS[k][:30]:<30} {eur(getattr(self, k))}")
        if shown:
            lines.append(div)
        lines += [
            f"  Umsatzsteuer                          {eur(self.output_tax)}",
            f"  Vorsteuer / Berichtigungen            {eur(self.input_tax)}",
            div,
            f"  KZ095 {KZ_LABELS['kz095']:<30} {eur(self.kz095)}",
            f"  {verdict}",
            f"  Status: {self.status}" + (f"  Referenz: {self.reference}" if self.reference else ""),
            "=" * W,
        ]
        return "\n".join(lines)


__all__ = [
    "KENNZAHLEN",
    "KZ_LABELS",
    "MONTHLY",
    "QUARTERLY",
    "UVA",
    "UVAPeriod",
    "UVA_NS",
]
