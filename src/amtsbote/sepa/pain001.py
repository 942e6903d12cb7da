"""
amtsbote.sepa.pain001
~~~~~~~~~~~~~~~~~~~~~
SEPA credit transfer initiation (ISO 20022 ``pain.001.001.03``).

One ``PmtInf`` block per batch: the debtor account pays every
``CdtTrfTxInf``. ``generate_pain001`` refuses invalid batches, so a file
that leaves this module always passes ``CreditTransfer.validate()``.

CSV import expects a header row with at least ``creditor_name``,
``creditor_iban`` and ``amount`` (major units, ``12.50``); optional
columns are ``creditor_bic``, ``currency`` and ``reference``. The
reference doubles as end-to-end id and remittance text.
"""

from __future__ import annotations

import csv
import io
import logging
import xml.etree.ElementTree as ET
from datetime import date, datetime

from ..exceptions import CodecError
from ..money import format_major, parse_major
from .. import xmlutil
from .models import (
    Account,
    Address,
    CreditTransaction,
    CreditTransfer,
    PartyInfo,
)

logger = logging.getLogger(__name__)

PAIN001_NS = "urn:iso:std:iso:20022:tech:xsd:pain.001.001.03"

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"

CSV_REQUIRED = ("creditor_name", "creditor_iban", "amount")


# ---------------------------------------------------------------------------
# Shared ISO 20022 fragments (also used by pain.008)
# ---------------------------------------------------------------------------

def party_element(parent: ET.Element, tag: str, party: PartyInfo) -> None:
    p = xmlutil.sub(parent, tag)
    xmlutil.sub(p, "Nm", party.name)
    addr = party.address
    if addr and addr.country:
        a = xmlutil.sub(p, "PstlAdr")
        xmlutil.sub_if(a, "StrtNm", addr.street_name)
        xmlutil.sub_if(a, "BldgNb", addr.building_no)
        xmlutil.sub_if(a, "PstCd", addr.post_code)
        xmlutil.sub_if(a, "TwnNm", addr.town_name)
        xmlutil.sub(a, "Ctry", addr.country)
    if party.id:
        xmlutil.sub(xmlutil.sub(xmlutil.sub(xmlutil.sub(p, "Id"), "OrgId"), "Othr"), "Id", party.id)


def account_element(parent: ET.Element, tag: str, account: Account) -> None:
    a = xmlutil.sub(parent, tag)
    xmlutil.sub(xmlutil.sub(a, "Id"), "IBAN", account.iban)
    xmlutil.sub_if(a, "Ccy", account.currency)


def agent_element(parent: ET.Element, tag: str, bic: str) -> None:
    xmlutil.sub(xmlutil.sub(xmlutil.sub(parent, tag), "FinInstnId"), "BIC", bic)


def amount_element(parent: ET.Element, amount: int, currency: str) -> None:
    xmlutil.sub(parent, "InstdAmt", format_major(amount), Ccy=currency or "EUR")


def read_party(el: ET.Element | None) -> PartyInfo:
    party = PartyInfo(name=xmlutil.text(el, "Nm"), id=xmlutil.text(el, "Id/OrgId/Othr/Id"))
    addr = xmlutil.child(el, "PstlAdr")
    if addr is not None:
        party.address = Address(
            country=xmlutil.text(addr, "Ctry"),
            street_name=xmlutil.text(addr, "StrtNm"),
            building_no=xmlutil.text(addr, "BldgNb"),
            post_code=xmlutil.text(addr, "PstCd"),
            town_name=xmlutil.text(addr, "TwnNm"),
        )
    return party


def read_account(acct: ET.Element | None, agent: ET.Element | None) -> Account:
    # some banks write Acct/IBAN instead of Acct/Id/IBAN
    iban = xmlutil.text(acct, "Id/IBAN") or xmlutil.text(acct, "IBAN")
    return Account(
        iban=iban,
        bic=xmlutil.text(agent, "FinInstnId/BIC") or xmlutil.text(agent, "FinInstnId/BICFI"),
        currency=xmlutil.text(acct, "Ccy"),
    )


def read_datetime(el: ET.Element | None, path: str) -> datetime | None:
    raw = xmlutil.text(el, path)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise CodecError(f"{path}: invalid date-time {raw!r}", cause=exc) from exc


def read_date(el: ET.Element | None, path: str) -> date | None:
    raw = xmlutil.text(el, path)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise CodecError(f"{path}: invalid date {raw!r}", cause=exc) from exc


def instructed_amount(el: ET.Element | None) -> tuple[int, str]:
    amt = xmlutil.find(el, "Amt/InstdAmt")
    if amt is None:
        amt = xmlutil.child(el, "InstdAmt")
    return xmlutil.minor_text(amt), (amt.get("Ccy", "EUR") if amt is not None else "EUR")


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

def generate_pain001(ct: CreditTransfer) -> bytes:
    """Render *ct* as pain.001 XML; raises ``DocumentValidationError`` if invalid."""
    ct.validate().raise_if_invalid("credit transfer")

    doc = ET.Element("Document", xmlns=PAIN001_NS)
    root = xmlutil.sub(doc, "CstmrCdtTrfInitn")

    hdr = xmlutil.sub(root, "GrpHdr")
    xmlutil.sub(hdr, "MsgId", ct.message_id)
    xmlutil.sub(hdr, "CreDtTm", ct.creation_time.strftime(DATETIME_FORMAT))
    xmlutil.sub(hdr, "NbOfTxs", ct.number_of_txs)
    xmlutil.sub(hdr, "CtrlSum", format_major(ct.control_sum))
    party_element(hdr, "InitgPty", ct.initiating_party or ct.debtor)

    pmt = xmlutil.sub(root, "PmtInf")
    xmlutil.sub(pmt, "PmtInfId", f"{ct.message_id}-001")
    xmlutil.sub(pmt, "PmtMtd", "TRF")
    xmlutil.sub(pmt, "BtchBookg", "true")
    xmlutil.sub(pmt, "NbOfTxs", ct.number_of_txs)
    xmlutil.sub(pmt, "CtrlSum", format_major(ct.control_sum))
    xmlutil.sub(xmlutil.sub(xmlutil.sub(pmt, "PmtTpInf"), "SvcLvl"), "Cd", "SEPA")
    xmlutil.sub(pmt, "ReqdExctnDt", ct.requested_execution_date.isoformat())
    party_element(pmt, "Dbtr", ct.debtor)
    account_element(pmt, "DbtrAcct", ct.debtor_account)
    if ct.debtor_account.bic:
        agent_element(pmt, "DbtrAgt", ct.debtor_account.bic)
    else:
        # IBAN-only: BIC may be omitted for SEPA since 2016
        xmlutil.sub(xmlutil.sub(xmlutil.sub(xmlutil.sub(pmt, "DbtrAgt"), "FinInstnId"), "Othr"), "Id", "NOTPROVIDED")
    xmlutil.sub(pmt, "ChrgBr", "SLEV")

    for tx in ct.transactions:
        t = xmlutil.sub(pmt, "CdtTrfTxInf")
        ids = xmlutil.sub(t, "PmtId")
        xmlutil.sub_if(ids, "InstrId", tx.instruction_id)
        xmlutil.sub(ids, "EndToEndId", tx.end_to_end_id)
        amount_element(xmlutil.sub(t, "Amt"), tx.amount, tx.currency)
        if tx.creditor_account.bic:
            agent_element(t, "CdtrAgt", tx.creditor_account.bic)
        party_element(t, "Cdtr", tx.creditor)
        account_element(t, "CdtrAcct", tx.creditor_account)
        if tx.remittance_info:
            xmlutil.sub(xmlutil.sub(t, "RmtInf"), "Ustrd", tx.remittance_info[:140])

    logger.info(
        "pain.001 %s: %d transaction(s), %s EUR",
        ct.message_id, ct.number_of_txs, format_major(ct.control_sum),
    )
    return xmlutil.to_bytes(doc)


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

def parse_pain001(data: bytes | str) -> CreditTransfer:
    """Read a pain.001 file back into a ``CreditTransfer`` (all PmtInf blocks merged)."""
    doc = xmlutil.parse(data, "pain.001")
    root = xmlutil.child(doc, "CstmrCdtTrfInitn")
    if root is None:
        raise CodecError("not a pain.001 document: CstmrCdtTrfInitn missing")

    hdr = xmlutil.child(root, "GrpHdr")
    blocks = list(xmlutil.children(root, "PmtInf"))
    if not blocks:
        raise CodecError("pain.001 document has no PmtInf block")
    first = blocks[0]

    ct = CreditTransfer(
        message_id=xmlutil.text(hdr, "MsgId"),
        debtor=read_party(xmlutil.child(first, "Dbtr")),
        debtor_account=read_account(xmlutil.child(first, "DbtrAcct"), xmlutil.child(first, "DbtrAgt")),
        initiating_party=read_party(xmlutil.child(hdr, "InitgPty")),
        creation_time=read_datetime(hdr, "CreDtTm") or datetime.now().replace(microsecond=0),
        execution_date=read_date(first, "ReqdExctnDt"),
    )
    for pmt in blocks:
        for t in xmlutil.children(pmt, "CdtTrfTxInf"):
            amount, currency = instructed_amount(t)
            ct.transactions.append(CreditTransaction(
                amount=amount,
                currency=currency,
                creditor=read_party(xmlutil.child(t, "Cdtr")),
                creditor_account=read_account(xmlutil.child(t, "CdtrAcct"), xmlutil.child(t, "CdtrAgt")),
                instruction_id=xmlutil.text(t, "PmtId/InstrId"),
                end_to_end_id=xmlutil.text(t, "PmtId/EndToEndId"),
                remittance_info=xmlutil.text(t, "RmtInf/Ustrd"),
            ))

    declared = xmlutil.int_text(hdr, "NbOfTxs", default=ct.number_of_txs)
    if declared != ct.number_of_txs:
        logger.warning("pain.001 %s declares %d transactions, found %d", ct.message_id, declared, ct.number_of_txs)
    return ct


# ---------------------------------------------------------------------------
# CSV import
# ---------------------------------------------------------------------------

def parse_credit_transfer_csv(text: str) -> list[CreditTransaction]:
    """Transactions from a CSV export; ids are left for ``CreditTransfer.build`` to assign."""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    header = [h.strip().lower() for h in (reader.fieldnames or [])]
    missing = [c for c in CSV_REQUIRED if c not in header]
    if missing:
        raise CodecError(f"CSV header is missing column(s): {', '.join(missing)}")
    reader.fieldnames = header

    txs: list[CreditTransaction] = []
    for lineno, row in enumerate(reader, start=2):
        row = {k: (v or "").strip() for k, v in row.items() if k}
        if not any(row.values()):
            continue
        try:
            amount = parse_major(row["amount"])
        except ValueError as exc:
            raise CodecError(f"CSV line {lineno}: {exc}", cause=exc) from exc
        reference = row.get("reference", "")
        txs.append(CreditTransaction(
            amount=amount,
            currency=row.get("currency") or "EUR",
            creditor=PartyInfo(row["creditor_name"]),
            creditor_account=Account(row["creditor_iban"], row.get("creditor_bic", "")),
            end_to_end_id=reference,
            remittance_info=reference,
        ))
    if not txs:
        raise CodecError("CSV contains no transactions")
    return txs


__all__ = [
    "PAIN001_NS",
    "generate_pain001",
    "parse_credit_transfer_csv",
    "parse_pain001",
]
