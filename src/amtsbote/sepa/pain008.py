"""
amtsbote.sepa.pain008
~~~~~~~~~~~~~~~~~~~~~
SEPA direct debit initiation (ISO 20022 ``pain.008.001.02``, CORE scheme).

Banks reject a ``PmtInf`` that mixes sequence types, so transactions are
grouped into one block per ``SeqTp`` in first-seen order; block ids are
``<MsgId>-001``, ``<MsgId>-002``, ...
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

from ..exceptions import CodecError
from ..money import format_major
from .. import xmlutil
from .models import DirectDebit, DirectDebitTransaction, RECURRENT
from .pain001 import (
    DATETIME_FORMAT,
    account_element,
    agent_element,
    amount_element,
    instructed_amount,
    party_element,
    read_account,
    read_date,
    read_datetime,
    read_party,
)

logger = logging.getLogger(__name__)

PAIN008_NS = "urn:iso:std:iso:20022:tech:xsd:pain.008.001.02"


def _by_sequence(dd: DirectDebit) -> dict[str, list[DirectDebitTransaction]]:
    groups: dict[str, list[DirectDebitTransaction]] = {}
    for tx in dd.transactions:
        groups.setdefault(tx.sequence_type, []).append(tx)
    return groups


def generate_pain008(dd: DirectDebit) -> bytes:
    """Render *dd* as pain.008 XML; raises ``DocumentValidationError`` if invalid."""
    dd.validate().raise_if_invalid("direct debit")

    doc = ET.Element("Document", xmlns=PAIN008_NS)
    root = xmlutil.sub(doc, "CstmrDrctDbtInitn")

    hdr = xmlutil.sub(root, "GrpHdr")
    xmlutil.sub(hdr, "MsgId", dd.message_id)
    xmlutil.sub(hdr, "CreDtTm", dd.creation_time.strftime(DATETIME_FORMAT))
    xmlutil.sub(hdr, "NbOfTxs", dd.number_of_txs)
    xmlutil.sub(hdr, "CtrlSum", format_major(dd.control_sum))
    party_element(hdr, "InitgPty", dd.creditor)

    for n, (seq, txs) in enumerate(_by_sequence(dd).items(), start=1):
        pmt = xmlutil.sub(root, "PmtInf")
        xmlutil.sub(pmt, "PmtInfId", f"{dd.message_id}-{n:03d}")
        xmlutil.sub(pmt, "PmtMtd", "DD")
        xmlutil.sub(pmt, "BtchBookg", "true")
        xmlutil.sub(pmt, "NbOfTxs", len(txs))
        xmlutil.sub(pmt, "CtrlSum", format_major(sum(tx.amount for tx in txs)))
        tp = xmlutil.sub(pmt, "PmtTpInf")
        xmlutil.sub(xmlutil.sub(tp, "SvcLvl"), "Cd", "SEPA")
        xmlutil.sub(xmlutil.sub(tp, "LclInstrm"), "Cd", "CORE")
        xmlutil.sub(tp, "SeqTp", seq)
        xmlutil.sub(pmt, "ReqdColltnDt", dd.requested_collection_date.isoformat())
        party_element(pmt, "Cdtr", dd.creditor)
        account_element(pmt, "CdtrAcct", dd.creditor_account)
        if dd.creditor_account.bic:
            agent_element(pmt, "CdtrAgt", dd.creditor_account.bic)
        else:
            xmlutil.sub(xmlutil.sub(xmlutil.sub(xmlutil.sub(pmt, "CdtrAgt"), "FinInstnId"), "Othr"), "Id", "NOTPROVIDED")
        xmlutil.sub(pmt, "ChrgBr", "SLEV")

        othr = xmlutil.sub(xmlutil.sub(xmlutil.sub(xmlutil.sub(pmt, "CdtrSchmeId"), "Id"), "PrvtId"), "Othr")
        xmlutil.sub(othr, "Id", dd.creditor_id)
        xmlutil.sub(xmlutil.sub(othr, "SchmeNm"), "Prtry", "SEPA")

        for tx in txs:
            t = xmlutil.sub(pmt, "DrctDbtTxInf")
            ids = xmlutil.sub(t, "PmtId")
            xmlutil.sub_if(ids, "InstrId", tx.instruction_id)
            xmlutil.sub(ids, "EndToEndId", tx.end_to_end_id)
            amount_element(t, tx.amount, tx.currency)
            mandate = xmlutil.sub(xmlutil.sub(t, "DrctDbtTx"), "MndtRltdInf")
            xmlutil.sub(mandate, "MndtId", tx.mandate_id)
            xmlutil.sub(mandate, "DtOfSgntr", tx.mandate_date.isoformat())
            if tx.debtor_account.bic:
                agent_element(t, "DbtrAgt", tx.debtor_account.bic)
            party_element(t, "Dbtr", tx.debtor)
            account_element(t, "DbtrAcct", tx.debtor_account)
            if tx.remittance_info:
                xmlutil.sub(xmlutil.sub(t, "RmtInf"), "Ustrd", tx.remittance_info[:140])

    logger.info(
        "pain.008 %s: %d transaction(s), %s EUR",
        dd.message_id, dd.number_of_txs, format_major(dd.control_sum),
    )
    return xmlutil.to_bytes(doc)


def parse_pain008(data: bytes | str) -> DirectDebit:
    doc = xmlutil.parse(data, "pain.008")
    root = xmlutil.child(doc, "CstmrDrctDbtInitn")
    if root is None:
        raise CodecError("not a pain.008 document: CstmrDrctDbtInitn missing")

    hdr = xmlutil.child(root, "GrpHdr")
    blocks = list(xmlutil.children(root, "PmtInf"))
    if not blocks:
        raise CodecError("pain.008 document has no PmtInf block")
    first = blocks[0]

    dd = DirectDebit(
        message_id=xmlutil.text(hdr, "MsgId"),
        creditor=read_party(xmlutil.child(first, "Cdtr")),
        creditor_account=read_account(xmlutil.child(first, "CdtrAcct"), xmlutil.child(first, "CdtrAgt")),
        creditor_id=xmlutil.text(first, "CdtrSchmeId/Id/PrvtId/Othr/Id"),
        creation_time=read_datetime(hdr, "CreDtTm") or datetime.now().replace(microsecond=0),
        collection_date=read_date(first, "ReqdColltnDt"),
    )
    for pmt in blocks:
        seq = xmlutil.text(pmt, "PmtTpInf/SeqTp") or RECURRENT
        for t in xmlutil.children(pmt, "DrctDbtTxInf"):
            amount, currency = instructed_amount(t)
            mandate = xmlutil.find(t, "DrctDbtTx/MndtRltdInf")
            dd.transactions.append(DirectDebitTransaction(
                amount=amount,
                currency=currency,
                debtor=read_party(xmlutil.child(t, "Dbtr")),
                debtor_account=read_account(xmlutil.child(t, "DbtrAcct"), xmlutil.child(t, "DbtrAgt")),
                mandate_id=xmlutil.text(mandate, "MndtId"),
                mandate_date=read_date(mandate, "DtOfSgntr"),
                sequence_type=seq,
                instruction_id=xmlutil.text(t, "PmtId/InstrId"),
                end_to_end_id=xmlutil.text(t, "PmtId/EndToEndId"),
                remittance_info=xmlutil.text(t, "RmtInf/Ustrd"),
            ))
    return dd


__all__ = ["PAIN008_NS", "generate_pain008", "parse_pain008"]
