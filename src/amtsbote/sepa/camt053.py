"""
amtsbote.sepa.camt053
~~~~~~~~~~~~~~~~~~~~~
Bank-to-customer statement (ISO 20022 ``camt.053``), read-only.

Only the first ``Stmt`` of a document is read. Balances of type ``OPBD``
(opening booked) and ``CLBD`` (closing booked) are taken as reported and
signed by their ``CdtDbtInd``. For each entry the counterparty is the
debtor on credits and the creditor on debits.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from ..exceptions import CodecError
from .. import xmlutil
from .models import CREDIT, DEBIT, Account, Statement, StatementEntry
from .pain001 import read_date, read_datetime

logger = logging.getLogger(__name__)

OPENING = "OPBD"
CLOSING = "CLBD"


def _signed(el: ET.Element, path: str = "Amt") -> int:
    amount = xmlutil.minor_text(el, path)
    return -amount if xmlutil.text(el, "CdtDbtInd") == DEBIT else amount


def _counterparty_iban(parties: ET.Element | None, tag: str) -> str:
    acct = xmlutil.child(parties, tag)
    return xmlutil.text(acct, "Id/IBAN") or xmlutil.text(acct, "IBAN")


def _entry(ntry: ET.Element) -> StatementEntry:
    amt = xmlutil.child(ntry, "Amt")
    indicator = xmlutil.text(ntry, "CdtDbtInd")
    if indicator not in (CREDIT, DEBIT):
        raise CodecError(f"statement entry has invalid CdtDbtInd {indicator!r}")

    entry = StatementEntry(
        amount=xmlutil.minor_text(ntry, "Amt"),
        currency=amt.get("Ccy", "EUR") if amt is not None else "EUR",
        credit_debit=indicator,
        booking_date=read_date(ntry, "BookgDt/Dt") or read_date(ntry, "BookgDt/DtTm"),
        value_date=read_date(ntry, "ValDt/Dt") or read_date(ntry, "ValDt/DtTm"),
        reference=xmlutil.text(ntry, "AcctSvcrRef"),
    )

    tx = xmlutil.find(ntry, "NtryDtls/TxDtls")
    if tx is None:
        return entry
    entry.end_to_end_id = xmlutil.text(tx, "Refs/EndToEndId")
    if entry.end_to_end_id == "NOTPROVIDED":
        entry.end_to_end_id = ""
    entry.reference = xmlutil.text(tx, "Refs/TxId") or entry.reference
    entry.remittance_info = " ".join(
        u.text.strip() for u in xmlutil.children(xmlutil.child(tx, "RmtInf"), "Ustrd") if u.text
    )
    parties = xmlutil.child(tx, "RltdPties")
    if entry.is_credit:
        entry.counterparty_name = xmlutil.text(parties, "Dbtr/Nm") or xmlutil.text(parties, "Dbtr/Pty/Nm")
        entry.counterparty_iban = _counterparty_iban(parties, "DbtrAcct")
    else:
        entry.counterparty_name = xmlutil.text(parties, "Cdtr/Nm") or xmlutil.text(parties, "Cdtr/Pty/Nm")
        entry.counterparty_iban = _counterparty_iban(parties, "CdtrAcct")
    return entry


def parse_camt053(data: bytes | str) -> Statement:
    """Parse the first statement of a camt.053 document."""
    doc = xmlutil.parse(data, "camt.053")
    stmt = xmlutil.find(doc, "BkToCstmrStmt/Stmt")
    if stmt is None:
        raise CodecError("camt.053 document contains no statement")

    acct = xmlutil.child(stmt, "Acct")
    statement = Statement(
        id=xmlutil.text(stmt, "Id"),
        creation_time=read_datetime(stmt, "CreDtTm"),
        account=Account(
            iban=xmlutil.text(acct, "Id/IBAN"),
            currency=xmlutil.text(acct, "Ccy"),
            name=xmlutil.text(acct, "Nm"),
            bic=xmlutil.text(acct, "Svcr/FinInstnId/BIC") or xmlutil.text(acct, "Svcr/FinInstnId/BICFI"),
        ),
    )

    for bal in xmlutil.children(stmt, "Bal"):
        kind = xmlutil.text(bal, "Tp/CdOrPrtry/Cd")
        if kind == OPENING:
            statement.opening_balance = _signed(bal)
        elif kind == CLOSING:
            statement.closing_balance = _signed(bal)

    statement.entries = [_entry(n) for n in xmlutil.children(stmt, "Ntry")]

    if not statement.balance_consistent:
        logger.warning(
            "statement %s: opening %d + entries != closing %d",
            statement.id, statement.opening_balance, statement.closing_balance,
        )
    return statement


__all__ = ["parse_camt053"]
