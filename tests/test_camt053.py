"""
tests/test_camt053.py
~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.sepa.camt053 and amtsbote.sepa.reconcile.
"""

from __future__ import annotations

import logging
from datetime import date

import pytest

from amtsbote.exceptions import CodecError
from amtsbote.sepa import (
    Account,
    CreditTransaction,
    CreditTransfer,
    PartyInfo,
    Statement,
    StatementEntry,
    parse_camt053,
    reconcile,
)

CAMT_NS = "urn:iso:std:iso:20022:tech:xsd:camt.053.001.02"


def _balance(kind: str, amount: str, indicator: str = "CRDT") -> str:
    return (
        f"<Bal><Tp><CdOrPrtry><Cd>{kind}</Cd></CdOrPrtry></Tp>"
        f'<Amt Ccy="EUR">{amount}</Amt><CdtDbtInd>{indicator}</CdtDbtInd>'
        f"<Dt><Dt>2025-03-31</Dt></Dt></Bal>"
    )


CREDIT_ENTRY = """
<Ntry>
  <Amt Ccy="EUR">1540.10</Amt><CdtDbtInd>CRDT</CdtDbtInd>
  <BookgDt><Dt>2025-03-20</Dt></BookgDt><ValDt><Dt>2025-03-21</Dt></ValDt>
  <AcctSvcrRef>BANK-1</AcctSvcrRef>
  <NtryDtls><TxDtls>
    <Refs><EndToEndId>NOTPROVIDED</EndToEndId><TxId>TX-1</TxId></Refs>
    <RltdPties><Dbtr><Nm>Kunde KG</Nm></Dbtr><DbtrAcct><Id><IBAN>DE89370400440532013000</IBAN></Id></DbtrAcct></RltdPties>
    <RmtInf><Ustrd>Zahlung</Ustrd><Ustrd>RE-2025-001</Ustrd></RmtInf>
  </TxDtls></NtryDtls>
</Ntry>
"""

DEBIT_ENTRY = """
<Ntry>
  <Amt Ccy="EUR">125.50</Amt><CdtDbtInd>DBIT</CdtDbtInd>
  <BookgDt><DtTm>2025-03-04T08:00:00</DtTm></BookgDt>
  <NtryDtls><TxDtls>
    <Refs><EndToEndId>BATCH-1-0001</EndToEndId></Refs>
    <RltdPties><Cdtr><Nm>Lieferant AG</Nm></Cdtr><CdtrAcct><Id><IBAN>GB82WEST12345698765432</IBAN></Id></CdtrAcct></RltdPties>
  </TxDtls></NtryDtls>
</Ntry>
"""

BARE_ENTRY = """
<Ntry><Amt Ccy="EUR">50.00</Amt><CdtDbtInd>CRDT</CdtDbtInd><AcctSvcrRef>BANK-3</AcctSvcrRef></Ntry>
"""


def _make_camt(*entries: str, opening="1000.00", closing="2464.60") -> bytes:
    body = "".join(entries) if entries else CREDIT_ENTRY + DEBIT_ENTRY + BARE_ENTRY
    return (
        f'<Document xmlns="{CAMT_NS}"><BkToCstmrStmt><GrpHdr><MsgId>M</MsgId></GrpHdr>'
        f"<Stmt><Id>STMT-2025-03</Id><CreDtTm>2025-04-01T06:00:00</CreDtTm>"
        f"<Acct><Id><IBAN>AT611904300234573201</IBAN></Id><Ccy>EUR</Ccy>"
        f"<Svcr><FinInstnId><BIC>BKAUATWW</BIC></FinInstnId></Svcr></Acct>"
        f"{_balance('OPBD', opening)}{_balance('CLBD', closing)}{body}</Stmt>"
        f"</BkToCstmrStmt></Document>"
    ).encode("utf-8")


def _make_entry(amount: int, indicator: str = "CRDT", **kw) -> StatementEntry:
    return StatementEntry(amount=amount, credit_debit=indicator, **kw)


# ---------------------------------------------------------------------------
# camt.053
# ---------------------------------------------------------------------------

class TestParseCamt053:
    def test_header(self):
        stmt = parse_camt053(_make_camt())
        assert stmt.id == "STMT-2025-03"
        assert stmt.account.iban == "AT611904300234573201"
        assert stmt.account.bic == "BKAUATWW"
        assert stmt.account.currency == "EUR"
        assert stmt.opening_balance == 100000
        assert stmt.closing_balance == 246460

    def test_totals_consistent(self):
        stmt = parse_camt053(_make_camt())
        assert stmt.total_credits == 159010
        assert stmt.total_debits == 12550
        assert stmt.balance_consistent

    def test_credit_entry(self):
        entry = parse_camt053(_make_camt()).entries[0]
        assert entry.is_credit
        assert entry.amount == 154010
        assert entry.booking_date == date(2025, 3, 20)
        assert entry.value_date == date(2025, 3, 21)
        assert entry.end_to_end_id == ""
        assert entry.reference == "TX-1"
        assert entry.remittance_info == "Zahlung RE-2025-001"
        assert entry.counterparty_name == "Kunde KG"
        assert entry.counterparty_iban == "DE89370400440532013000"

    def test_debit_entry(self):
        entry = parse_camt053(_make_camt()).entries[1]
        assert entry.is_debit
        assert entry.signed_amount == -12550
        assert entry.booking_date == date(2025, 3, 4)
        assert entry.end_to_end_id == "BATCH-1-0001"
        assert entry.counterparty_name == "Lieferant AG"
        assert entry.counterparty_iban == "GB82WEST12345698765432"

    def test_entry_without_details(self):
        entry = parse_camt053(_make_camt()).entries[2]
        assert entry.reference == "BANK-3"
        assert entry.counterparty_name == ""

    def test_debit_balance_negative(self):
        data = _make_camt(BARE_ENTRY, opening="10.00", closing="40.00").replace(
            b"<Amt Ccy=\"EUR\">10.00</Amt><CdtDbtInd>CRDT", b"<Amt Ccy=\"EUR\">10.00</Amt><CdtDbtInd>DBIT",
        )
        stmt = parse_camt053(data)
        assert stmt.opening_balance == -1000
        assert stmt.balance_consistent

    def test_inconsistent_balance_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="amtsbote.sepa.camt053"):
            stmt = parse_camt053(_make_camt(closing="0.00"))
        assert not stmt.balance_consistent
        assert stmt.expected_closing_balance == 246460
        assert "STMT-2025-03" in caplog.text

    def test_invalid_indicator(self):
        bad = BARE_ENTRY.replace("CRDT", "XXXX")
        with pytest.raises(CodecError, match="CdtDbtInd"):
            parse_camt053(_make_camt(bad))

    def test_no_statement(self):
        with pytest.raises(CodecError, match="no statement"):
            parse_camt053(b"<Document><BkToCstmrStmt/></Document>")

    def test_malformed(self):
        with pytest.raises(CodecError):
            parse_camt053(b"<Document>")

    def test_to_dict(self):
        d = parse_camt053(_make_camt()).to_dict()
        assert d["balance_consistent"] is True
        assert d["entries"][1]["credit_debit"] == "DBIT"
        assert d["creation_time"] == "2025-04-01T06:00:00"


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------

def _make_transfer() -> CreditTransfer:
    return CreditTransfer.build(
        "BATCH-1", "Muster GmbH", "AT611904300234573201",
        [CreditTransaction(12550, PartyInfo("Lieferant AG"), Account("GB82WEST12345698765432"))],
    )


class TestReconcile:
    def test_statement_against_transfer_and_invoice(self, sample_invoice):
        stmt = parse_camt053(_make_camt())
        report = reconcile(stmt, transfers=[_make_transfer()], invoices=[sample_invoice])
        assert report.matched_count == 2
        assert report.unmatched_count == 1
        kinds = {m.kind: m for m in report.matches}
        assert kinds["invoice"].reference == "RE-2025-001"
        assert kinds["transfer"].reference == "BATCH-1-0001"
        assert kinds["transfer"].difference == 0
        assert report.unmatched_entries[0].reference == "BANK-3"

    def test_transfer_difference_reported(self):
        tx = CreditTransaction(12000, PartyInfo("L"), Account("GB82WEST12345698765432"), end_to_end_id="E-1")
        stmt = Statement("S", Account(""), entries=[_make_entry(12550, "DBIT", end_to_end_id="E-1")])
        match = reconcile(stmt, transfers=[tx]).matches[0]
        assert match.expected == 12000
        assert match.difference == 550

    def test_transfer_used_once(self):
        tx = CreditTransaction(100, PartyInfo("L"), Account(""), end_to_end_id="E-1")
        stmt = Statement("S", Account(""), entries=[
            _make_entry(100, "DBIT", end_to_end_id="E-1"),
            _make_entry(100, "DBIT", end_to_end_id="E-1"),
        ])
        report = reconcile(stmt, transfers=[tx])
        assert (report.matched_count, report.unmatched_count) == (1, 1)

    def test_credit_never_matches_transfer(self):
        tx = CreditTransaction(100, PartyInfo("L"), Account(""), end_to_end_id="E-1")
        stmt = Statement("S", Account(""), entries=[_make_entry(100, "CRDT", end_to_end_id="E-1")])
        assert reconcile(stmt, transfers=[tx]).matched_count == 0

    def test_invoice_amount_must_match(self, sample_invoice):
        stmt = Statement("S", Account(""), entries=[
            _make_entry(154000, remittance_info="RE-2025-001"),
        ])
        assert reconcile(stmt, invoices=[sample_invoice]).matched_count == 0

    def test_invoice_number_whole_token(self, sample_invoice):
        sample_invoice.id = "RE-1"
        sample_invoice.calc_totals()
        stmt = Statement("S", Account(""), entries=[
            _make_entry(sample_invoice.payable_amount, remittance_info="Zahlung re-10"),
            _make_entry(sample_invoice.payable_amount, remittance_info="Zahlung re-1, danke"),
        ])
        report = reconcile(stmt, invoices=[sample_invoice])
        assert report.matched_count == 1
        assert report.matches[0].entry is stmt.entries[1]

    def test_invoice_matched_once(self, sample_invoice):
        entry = dict(remittance_info="RE-2025-001")
        stmt = Statement("S", Account(""), entries=[
            _make_entry(sample_invoice.payable_amount, **entry),
            _make_entry(sample_invoice.payable_amount, **entry),
        ])
        report = reconcile(stmt, invoices=[sample_invoice])
        assert (report.matched_count, report.unmatched_count) == (1, 1)

    def test_report_output(self, sample_invoice):
        report = reconcile(parse_camt053(_make_camt()), transfers=[_make_transfer()], invoices=[sample_invoice])
        d = report.to_dict()
        assert d["matched"] == 2
        assert d["matches"][0]["kind"] == "invoice"
        text = report.summary()
        assert "+     1540.10  invoice   RE-2025-001" in text
        assert "Unmatched:  1" in text
