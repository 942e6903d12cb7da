"""
amtsbote.erechnung.validate
~~~~~~~~~~~~~~~~~~~~~~~~~~~
EN 16931 business rules for the semantic invoice model.

Issue codes are the EN 16931 rule identifiers (``BR-02``, ``BR-S-05``,
...) so they can be looked up in the norm directly. Line fields are
addressed as ``lines[<line id>].<field>``.
"""

from __future__ import annotations

from ..models import ValidationResult
from .model import (
    CATEGORY_EXEMPT,
    CATEGORY_REDUCED,
    CATEGORY_REVERSE_CHARGE,
    CATEGORY_STANDARD,
    CATEGORY_ZERO,
    INVOICE_TYPES,
    TAX_CATEGORIES,
    Invoice,
    Line,
)


_ZERO_RATE_RULES = {
    CATEGORY_ZERO:           ("BR-Z-05", "VAT rate shall be 0 for category Z"),
    CATEGORY_EXEMPT:         ("BR-E-05", "VAT rate shall be 0 for category E"),
    CATEGORY_REVERSE_CHARGE: ("BR-AE-05", "VAT rate shall be 0 for category AE (reverse charge)"),
}


def validate_invoice(inv: Invoice) -> ValidationResult:
    result = ValidationResult()

    if not inv.id:
        result.add("BR-02", "id", "Invoice number (BT-1) is mandatory")
    if inv.issue_date is None:
        result.add("BR-03", "issue_date", "Invoice issue date (BT-2) is mandatory")
    if not inv.invoice_type:
        result.add("BR-04", "invoice_type", "Invoice type code (BT-3) is mandatory")
    elif inv.invoice_type not in INVOICE_TYPES:
        result.add("BR-04", "invoice_type", f"Invoice type code {inv.invoice_type!r} is not supported (380, 381, 389)")
    if not inv.currency:
        result.add("BR-05", "currency", "Invoice currency code (BT-5) is mandatory")

    if inv.seller is None:
        result.add("BR-06", "seller", "Seller (BG-4) is mandatory")
    else:
        if not inv.seller.name:
            result.add("BT-27", "seller.name", "Seller name (BT-27) is mandatory")
        if not inv.seller.country:
            result.add("BR-09", "seller.country", "Seller country code (BT-40) is mandatory")

    if inv.buyer is None:
        result.add("BR-07", "buyer", "Buyer (BG-7) is mandatory")
    else:
        if not inv.buyer.name:
            result.add("BT-44", "buyer.name", "Buyer name (BT-44) is mandatory")
        if not inv.buyer.country:
            result.add("BR-11", "buyer.country", "Buyer country code (BT-55) is mandatory")

    if not inv.lines:
        result.add("BR-16", "lines", "Invoice shall have at least one Invoice line (BG-25)")
    for i, line in enumerate(inv.lines):
        _validate_line(result, line, f"lines[{line.id or i}]")

    # only meaningful once calc_totals() has run
    if inv.tax_exclusive_amount and inv.lines:
        line_sum = sum(line.line_total for line in inv.lines)
        if line_sum != inv.tax_exclusive_amount:
            result.warn(
                "BR-CO-10", "tax_exclusive_amount",
                "Sum of line net amounts differs from tax exclusive amount; run calc_totals()",
            )
    return result


def _validate_line(result: ValidationResult, line: Line, prefix: str) -> None:
    if not line.id:
        result.add("BR-21", f"{prefix}.id", "Invoice line identifier (BT-126) is mandatory")
    if line.quantity == 0:
        result.add("BR-22", f"{prefix}.quantity", "Invoiced quantity (BT-129) is mandatory")
    if not line.unit_code:
        result.add("BR-23", f"{prefix}.unit_code", "Invoiced quantity unit of measure code (BT-130) is mandatory")
    if not line.description:
        result.add("BR-25", f"{prefix}.description", "Item name (BT-153) is mandatory")
    if line.unit_price <= 0:
        result.add("BR-26", f"{prefix}.unit_price", "Item net price (BT-146) must be greater than zero")

    cat = line.tax_category
    if not cat:
        result.add("BR-CO-18", f"{prefix}.tax_category", "VAT category code (BT-151) is mandatory")
    elif cat not in TAX_CATEGORIES:
        result.add("BR-CO-18", f"{prefix}.tax_category", f"Unknown VAT category code {cat!r}")
    elif cat in (CATEGORY_STANDARD, CATEGORY_REDUCED):
        if line.tax_percent <= 0:
            result.add(
                "BR-S-05", f"{prefix}.tax_percent",
                f"VAT rate shall be greater than zero for category {cat}",
            )
    elif line.tax_percent != 0:
        code, message = _ZERO_RATE_RULES[cat]
        result.add(code, f"{prefix}.tax_percent", message)


__all__ = ["validate_invoice"]
