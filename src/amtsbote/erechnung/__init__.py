"""
amtsbote.erechnung
~~~~~~~~~~~~~~~~~~
EN 16931 electronic invoices in two XML dialects.

Usage::

    from amtsbote.erechnung import Invoice, validate_invoice, encode_ubl

    inv = Invoice.from_file("rechnung.json").calc_totals()
    validate_invoice(inv).raise_if_invalid("invoice")
    xml = encode_ubl(inv)          # XRechnung
    xml = encode_cii(inv)          # ZUGFeRD / Factur-X
"""

from .cii import decode_cii, encode_cii
from .model import (
    BankAccount,
    Invoice,
    Line,
    Party,
    TaxSubtotal,
    calc_totals,
)
from .ubl import decode_ubl, encode_ubl
from .validate import validate_invoice

__all__ = [
    "BankAccount",
    "Invoice",
    "Line",
    "Party",
    "TaxSubtotal",
    "calc_totals",
    "decode_cii",
    "decode_ubl",
    "encode_cii",
    "encode_ubl",
    "validate_invoice",
]
