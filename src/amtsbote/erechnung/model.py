"""
amtsbote.erechnung.model
~~~~~~~~~~~~~~~~~~~~~~~~
Semantic model of an EN 16931 electronic invoice.

Both XML dialects (UBL for XRechnung, CII for ZUGFeRD / Factur-X) render
this one model; neither adds fields of its own.

Key design decisions
--------------------
* Money is integer cents (``unit_price``, ``line_total`` and every total).
  Quantities and tax rates are ``Decimal`` so that ``2.5`` hours or a
  ``5.5 %`` rate never drift through float arithmetic.

* ``calc_totals()`` is the only place totals are derived. It is
  idempotent: running it twice gives the same document.

JSON input::

    {
      "id": "2025-0042",
      "issue_date": "2025-03-01",
      "seller": {"name": "Muster GmbH", "country": "AT", "vat_number": "ATU12345678"},
      "buyer":  {"name": "Kunde AG", "country": "DE"},
      "lines": [{"id": "1", "description": "Beratung", "quantity": 10,
                 "unit_code": "HUR", "unit_price": 12000,
                 "tax_category": "S", "tax_percent": 20}]
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

from ..exceptions import CodecError
from ..money import format_major, round_half_even


# UNTDID 1001
COMMERCIAL_INVOICE = "380"
CREDIT_NOTE        = "381"
SELF_BILLED        = "389"
INVOICE_TYPES = {COMMERCIAL_INVOICE, CREDIT_NOTE, SELF_BILLED}

# UNCL 5305
CATEGORY_STANDARD       = "S"
CATEGORY_REDUCED        = "AA"
CATEGORY_ZERO           = "Z"
CATEGORY_EXEMPT         = "E"
CATEGORY_REVERSE_CHARGE = "AE"
TAX_CATEGORIES = {
    CATEGORY_STANDARD:       "Standard rate",
    CATEGORY_REDUCED:        "Lower rate",
    CATEGORY_ZERO:           "Zero rated",
    CATEGORY_EXEMPT:         "Exempt from tax",
    CATEGORY_REVERSE_CHARGE: "Reverse charge",
}

# UNCL 4461
SEPA_CREDIT_TRANSFER = "58"
PAYMENT_MEANS = {
    "30": "Credit transfer",
    SEPA_CREDIT_TRANSFER: "SEPA credit transfer",
    "59": "SEPA direct debit",
    "49": "Direct debit",
    "48": "Bank card",
    "10": "Cash",
}


def to_decimal(value, what: str = "number") -> Decimal:
    """Coerce JSON / XML input to Decimal without passing through float repr noise."""
    if isinstance(value, Decimal):
        return value
    if value in (None, ""):
        return Decimal(0)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise CodecError(f"{what}: not a number: {value!r}", cause=exc) from exc


def parse_date(value, what: str = "date") -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise CodecError(f"{what}: invalid date {value!r} (use YYYY-MM-DD)", cause=exc) from exc


def decimal_text(value: Decimal) -> str:
    """Decimal('20.00') → '20', Decimal('2.50') → '2.5'"""
    return format(value.normalize(), "f")


def _num(value: Decimal) -> int | float:
    """Decimal → JSON number, keeping whole numbers integral."""
    return int(value) if value == value.to_integral_value() else float(value)


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

@dataclass
class Party:
    """Seller (BG-4) or buyer (BG-7)."""

    name:              str
    country:           str = ""
    id:                str = ""
    street:            str = ""
    additional_street: str = ""
    city:              str = ""
    postal_code:       str = ""
    vat_number:        str = ""
    tax_id:            str = ""
    email:             str = ""
    contact_name:      str = ""
    contact_phone:     str = ""

    def to_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v or k in ("name", "country")}

    @classmethod
    def from_dict(cls, d: dict | None) -> "Party | None":
        if not d:
            return None
        return cls(
            name=              d.get("name", ""),
            country=           d.get("country", ""),
            id=                d.get("id", ""),
            street=            d.get("street", ""),
            additional_street= d.get("additional_street", ""),
            city=              d.get("city", ""),
            postal_code=       d.get("postal_code", ""),
            vat_number=        d.get("vat_number", ""),
            tax_id=            d.get("tax_id", ""),
            email=             d.get("email", ""),
            contact_name=      d.get("contact_name", ""),
            contact_phone=     d.get("contact_phone", ""),
        )


@dataclass
class BankAccount:
    iban: str
    bic:  str = ""
    name: str = ""

    def to_dict(self) -> dict:
        return {"iban": self.iban, "bic": self.bic, "name": self.name}

    @classmethod
    def from_dict(cls, d: dict | None) -> "BankAccount | None":
        if not d:
            return None
        return cls(iban=d.get("iban", ""), bic=d.get("bic", ""), name=d.get("name", ""))


# ---------------------------------------------------------------------------
# Lines and tax breakdown
# ---------------------------------------------------------------------------

@dataclass
class Line:
    """One invoice line (BG-25). ``unit_price`` and ``line_total`` are cents."""

    id:                   str
    description:          str
    quantity:             Decimal
    unit_code:            str
    unit_price:           int
    tax_category:         str
    tax_percent:          Decimal = Decimal(0)
    line_total:           int = 0
    detailed_description: str = ""
    item_id:              str = ""
    gtin:                 str = ""

    def calc_total(self) -> int:
        self.line_total = round_half_even(Decimal(self.unit_price) * self.quantity)
        return self.line_total

    def to_dict(self) -> dict:
        d = {
            "id":           self.id,
            "description":  self.description,
            "quantity":     _num(self.quantity),
            "unit_code":    self.unit_code,
            "unit_price":   self.unit_price,
            "line_total":   self.line_total,
            "tax_category": self.tax_category,
            "tax_percent":  _num(self.tax_percent),
        }
        for key in ("detailed_description", "item_id", "gtin"):
            if getattr(self, key):
                d[key] = getattr(self, key)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Line":
        try:
            unit_price = int(d.get("unit_price") or 0)
        except (TypeError, ValueError) as exc:
            raise CodecError("unit_price must be an integer amount in cents", cause=exc) from exc
        return cls(
            id=                   str(d.get("id", "")),
            description=          d.get("description", ""),
            quantity=             to_decimal(d.get("quantity"), "quantity"),
            unit_code=            d.get("unit_code", ""),
            unit_price=           unit_price,
            tax_category=         d.get("tax_category", ""),
            tax_percent=          to_decimal(d.get("tax_percent"), "tax_percent"),
            line_total=           int(d.get("line_total") or 0),
            detailed_description= d.get("detailed_description", ""),
            item_id=              d.get("item_id", ""),
            gtin=                 d.get("gtin", ""),
        )


@dataclass
class TaxSubtotal:
    """VAT breakdown for one (category, rate) group (BG-23)."""

    tax_category:     str
    tax_percent:      Decimal
    taxable_amount:   int = 0
    tax_amount:       int = 0
    exemption_reason: str = ""

    def to_dict(self) -> dict:
        d = {
            "taxable_amount": self.taxable_amount,
            "tax_amount":     self.tax_amount,
            "tax_category":   self.tax_category,
            "tax_percent":    _num(self.tax_percent),
        }
        if self.exemption_reason:
            d["exemption_reason"] = self.exemption_reason
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "TaxSubtotal":
        return cls(
            tax_category=     d.get("tax_category", ""),
            tax_percent=      to_decimal(d.get("tax_percent"), "tax_percent"),
            taxable_amount=   int(d.get("taxable_amount") or 0),
            tax_amount=       int(d.get("tax_amount") or 0),
            exemption_reason= d.get("exemption_reason", ""),
        )


# ---------------------------------------------------------------------------
# Invoice
# ---------------------------------------------------------------------------

@dataclass
class Invoice:
    id:                   str = ""
    invoice_type:         str = COMMERCIAL_INVOICE
    issue_date:           date | None = None
    due_date:             date | None = None
    currency:             str = "EUR"
    buyer_reference:      str = ""
    order_reference:      str = ""
    seller:               Party | None = None
    buyer:                Party | None = None
    lines:                list[Line] = field(default_factory=list)
    payment_means:        str = ""
    payment_terms:        str = ""
    bank_account:         BankAccount | None = None
    notes:                str = ""
    # derived by calc_totals()
    tax_subtotals:        list[TaxSubtotal] = field(default_factory=list)
    tax_exclusive_amount: int = 0
    tax_amount:           int = 0
    tax_inclusive_amount: int = 0
    payable_amount:       int = 0

    def __post_init__(self) -> None:
        self.payment_means = self.payment_means_code()

    def payment_means_code(self) -> str:
        """The UNCL 4461 code to encode; a payee account implies SEPA credit transfer."""
        if self.payment_means:
            return self.payment_means
        return SEPA_CREDIT_TRANSFER if self.bank_account else ""

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def calc_totals(self) -> "Invoice":
        """
        Derive line totals, the VAT breakdown and the document totals.

        Lines are grouped by ``(tax_category, tax_percent)`` in first-seen
        order. Each line total and each group's tax is rounded half-even
        to whole cents on its own. Exemption reasons already present on a
        group survive recalculation.
        """
        reasons = {
            (ts.tax_category, ts.tax_percent): ts.exemption_reason
            for ts in self.tax_subtotals if ts.exemption_reason
        }
        groups: dict[tuple[str, Decimal], TaxSubtotal] = {}
        for line in self.lines:
            line.calc_total()
            key = (line.tax_category, line.tax_percent)
            if key not in groups:
                groups[key] = TaxSubtotal(
                    tax_category=line.tax_category,
                    tax_percent=line.tax_percent,
                    exemption_reason=reasons.get(key, ""),
                )
            groups[key].taxable_amount += line.line_total

        for ts in groups.values():
            ts.tax_amount = round_half_even(Decimal(ts.taxable_amount) * ts.tax_percent / 100)

        self.tax_subtotals        = list(groups.values())
        self.tax_exclusive_amount = sum(ts.taxable_amount for ts in self.tax_subtotals)
        self.tax_amount           = sum(ts.tax_amount for ts in self.tax_subtotals)
        self.tax_inclusive_amount = self.tax_exclusive_amount + self.tax_amount
        self.payable_amount       = self.tax_inclusive_amount
        return self

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "id":                   self.id,
            "invoice_type":         self.invoice_type,
            "issue_date":           self.issue_date.isoformat() if self.issue_date else None,
            "due_date":             self.due_date.isoformat() if self.due_date else None,
            "currency":             self.currency,
            "buyer_reference":      self.buyer_reference,
            "order_reference":      self.order_reference,
            "seller":               self.seller.to_dict() if self.seller else None,
            "buyer":                self.buyer.to_dict() if self.buyer else None,
            "lines":                [line.to_dict() for line in self.lines],
            "payment_means":        self.payment_means,
            "payment_terms":        self.payment_terms,
            "bank_account":         self.bank_account.to_dict() if self.bank_account else None,
            "notes":                self.notes,
            "tax_subtotals":        [ts.to_dict() for ts in self.tax_subtotals],
            "tax_exclusive_amount": self.tax_exclusive_amount,
            "tax_amount":           self.tax_amount,
            "tax_inclusive_amount": self.tax_inclusive_amount,
            "payable_amount":       self.payable_amount,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Invoice":
        """Build from the JSON shape; missing type and currency get the defaults."""
        if not isinstance(d, dict):
            raise CodecError("invoice JSON must be an object")
        return cls(
            id=                   str(d.get("id", "")),
            invoice_type=         str(d.get("invoice_type") or COMMERCIAL_INVOICE),
            issue_date=           parse_date(d.get("issue_date"), "issue_date"),
            due_date=             parse_date(d.get("due_date"), "due_date"),
            currency=             d.get("currency") or "EUR",
            buyer_reference=      d.get("buyer_reference", ""),
            order_reference=      d.get("order_reference", ""),
            seller=               Party.from_dict(d.get("seller")),
            buyer=                Party.from_dict(d.get("buyer")),
            lines=                [Line.from_dict(x) for x in d.get("lines") or []],
            payment_means=        str(d.get("payment_means") or ""),
            payment_terms=        d.get("payment_terms", ""),
            bank_account=         BankAccount.from_dict(d.get("bank_account")),
            notes=                d.get("notes", ""),
            tax_subtotals=        [TaxSubtotal.from_dict(x) for x in d.get("tax_subtotals") or []],
            tax_exclusive_amount= int(d.get("tax_exclusive_amount") or 0),
            tax_amount=           int(d.get("tax_amount") or 0),
            tax_inclusive_amount= int(d.get("tax_inclusive_amount") or 0),
            payable_amount=       int(d.get("payable_amount") or 0),
        )

    @classmethod
    def from_json(cls, data: str | bytes) -> "Invoice":
        try:
            raw = json.loads(data)
        except json.JSONDecodeError as exc:
            raise CodecError("invalid invoice JSON", cause=exc) from exc
        return cls.from_dict(raw)

    @classmethod
    def from_file(cls, path: str | Path) -> "Invoice":
        return cls.from_json(Path(path).read_text(encoding="utf-8"))

    def to_json(self, path: str | Path | None = None) -> str:
        raw = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
        if path:
            Path(path).write_text(raw, encoding="utf-8")
        return raw

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def summary(self) -> str:
        W = 64
        cur = self.currency
        lines = [
            "=" * W,
            f"  Rechnung {self.id}  ({self.issue_date.isoformat() if self.issue_date else '-'})",
            f"  {self.seller.name if self.seller else '?'}  →  {self.buyer.name if self.buyer else '?'}",
            "=" * W,
        ]
        for line in self.lines:
            lines.append(
                f"  {line.id:<4} {line.description[:28]:<28} {line.quantity:>7} {line.unit_code:<4}"
                f" {format_major(line.line_total):>12}"
            )
        lines.append("─" * W)
        for ts in self.tax_subtotals:
            lines.append(
                f"  USt {ts.tax_category:<2} {ts.tax_percent:>5}%  auf {format_major(ts.taxable_amount):>12}"
                f"  = {format_major(ts.tax_amount):>10} {cur}"
            )
        lines += [
            "─" * W,
            f"  Netto    {format_major(self.tax_exclusive_amount):>14} {cur}",
            f"  USt      {format_major(self.tax_amount):>14} {cur}",
            f"  Brutto   {format_major(self.tax_inclusive_amount):>14} {cur}",
            "=" * W,
        ]
        return "\n".join(lines)


def calc_totals(invoice: Invoice) -> Invoice:
    return invoice.calc_totals()


__all__ = [
    "BankAccount",
    "CATEGORY_EXEMPT",
    "CATEGORY_REDUCED",
    "CATEGORY_REVERSE_CHARGE",
    "CATEGORY_STANDARD",
    "CATEGORY_ZERO",
    "COMMERCIAL_INVOICE",
    "CREDIT_NOTE",
    "INVOICE_TYPES",
    "Invoice",
    "Line",
    "PAYMENT_MEANS",
    "SEPA_CREDIT_TRANSFER",
    "Party",
    "SELF_BILLED",
    "TAX_CATEGORIES",
    "TaxSubtotal",
    "calc_totals",
    "decimal_text",
    "parse_date",
    "to_decimal",
]
