"""
amtsbote.sepa
~~~~~~~~~~~~~
SEPA payment files and account identifiers.

Usage::

    from amtsbote.sepa import CreditTransfer, CreditTransaction, generate_pain001

    txs = parse_credit_transfer_csv(open("payments.csv").read())
    ct  = CreditTransfer.build("BATCH-2025-03", "Muster GmbH", "AT611904300234573201", txs)
    xml = generate_pain001(ct)

    stmt   = parse_camt053(open("statement.xml", "rb").read())
    report = reconcile(stmt, transfers=[ct], invoices=open_invoices)
"""

from .bic import (
    AUSTRIAN_BANKS,
    AustrianBank,
    derive_bic_from_iban,
    is_valid_bic,
    lookup_austrian_bank,
    lookup_bank_by_iban,
    validate_bic,
)
from .camt053 import parse_camt053
from .iban import (
    IBANValidationResult,
    calculate_check_digits,
    format_iban,
    is_valid_iban,
    normalize_iban,
    validate_iban,
    validate_iban_details,
)
from .models import (
    Account,
    Address,
    CreditTransaction,
    CreditTransfer,
    DirectDebit,
    DirectDebitTransaction,
    PartyInfo,
    Statement,
    StatementEntry,
)
from .pain001 import generate_pain001, parse_credit_transfer_csv, parse_pain001
from .pain008 import generate_pain008, parse_pain008
from .reconcile import ReconciliationMatch, ReconciliationReport, reconcile

__all__ = [
    "AUSTRIAN_BANKS",
    "Account",
    "Address",
    "AustrianBank",
    "CreditTransaction",
    "CreditTransfer",
    "DirectDebit",
    "DirectDebitTransaction",
    "IBANValidationResult",
    "PartyInfo",
    "ReconciliationMatch",
    "ReconciliationReport",
    "Statement",
    "StatementEntry",
    "calculate_check_digits",
    "derive_bic_from_iban",
    "format_iban",
    "generate_pain001",
    "generate_pain008",
    "is_valid_bic",
    "is_valid_iban",
    "lookup_austrian_bank",
    "lookup_bank_by_iban",
    "normalize_iban",
    "parse_camt053",
    "parse_credit_transfer_csv",
    "parse_pain001",
    "parse_pain008",
    "reconcile",
    "validate_bic",
    "validate_iban",
    "validate_iban_details",
]
