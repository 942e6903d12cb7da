"""
tests/test_sepa.py
~~~~~~~~~~~~~~~~~~
Tests for amtsbote.sepa — IBAN/BIC checks, pain.001 and pain.008.
"""

from __future__ import annotations

from datetime import date, datetime

import pytest

from amtsbote.exceptions import CodecError, DocumentValidationError
from amtsbote.identifiers import IdentifierError
from amtsbote.sepa import (
    Account,
    CreditTransaction,
    CreditTransfer,
    DirectDebit,
    DirectDebitTransaction,
    PartyInfo,
    calculate_check_digits,
    derive_bic_from_iban,
    format_iban,
    generate_pain001,
    generate_pain008,
    is_valid_bic,
    is_valid_iban,
    lookup_austrian_bank,
    parse_credit_transfer_csv,
    parse_pain001,
    parse_pain008,
    validate_bic,
    validate_iban,
    validate_iban_details,
)
from amtsbote.sepa.iban import IBAN_LENGTHS, mod97

AT_IBAN = "AT611904300234573201"
DE_IBAN = "DE89370400440532013000"
GB_IBAN = "GB82WEST12345698765432"
CREATED = datetime(2025, 3, 1, 10, 0, 0)


def _make_transfer(*txs: CreditTransaction, **kw) -> CreditTransfer:
    if not txs:
        txs = (CreditTransaction(12550, PartyInfo("Lieferant AG"), Account(DE_IBAN), remittance_info="RE-77"),)
    kw.setdefault("creation_time", CREATED)
    kw.setdefault("execution_date", date(2025, 3, 3))
    return CreditTransfer.build("BATCH-1", "Muster GmbH", AT_IBAN, txs, **kw)


def _make_debit_tx(amount=1990, seq="RCUR", mandate="M-1", **kw) -> DirectDebitTransaction:
    return DirectDebitTransaction(
        amount=amount,
        debtor=PartyInfo(kw.pop("name", "Kunde")),
        debtor_account=Account(kw.pop("iban", DE_IBAN)),
        mandate_id=mandate,
        mandate_date=kw.pop("mandate_date", date(2024, 6, 1)),
        sequence_type=seq,
        **kw,
    )


def _make_debit(*txs: DirectDebitTransaction, **kw) -> DirectDebit:
    kw.setdefault("creation_time", CREATED)
    return DirectDebit.build("DD-1", "Verein", AT_IBAN, "AT98ZZZ00000012345", txs or (_make_debit_tx(),), **kw)


# ---------------------------------------------------------------------------
# IBAN
# ---------------------------------------------------------------------------

class TestIBAN:
    def test_valid(self):
        validate_iban(AT_IBAN)
        assert is_valid_iban(DE_IBAN)
        assert is_valid_iban(GB_IBAN)

    def test_spaces_and_case_ignored(self):
        assert is_valid_iban("at61 1904 3002 3457 3201")

    def test_check_digit_failure(self):
        with pytest.raises(IdentifierError, match="check digit"):
            validate_iban("AT611904300234573202")

    def test_mod97_remainder(self):
        assert mod97(AT_IBAN) == 1
        assert mod97("AT611904300234573202") != 1

    @pytest.mark.parametrize("iban,message", [
        ("AT61", "format"),
        ("ATXX1904300234573201", "format"),
        ("US611904300234573201", "unsupported IBAN country"),
        ("AT6119043002345732011", "length"),
    ])
    def test_structural_errors(self, iban, message):
        with pytest.raises(IdentifierError, match=message):
            validate_iban(iban)

    def test_calculate_check_digits(self):
        assert calculate_check_digits("at", "1904300234573201") == AT_IBAN

    @pytest.mark.parametrize("country", sorted(IBAN_LENGTHS))
    def test_synthesized_iban_validates(self, country):
        bban = ("1234567890" * 4)[:IBAN_LENGTHS[country] - 4]
        iban = calculate_check_digits(country, bban)
        assert len(iban) == IBAN_LENGTHS[country]
        validate_iban(iban)

    @pytest.mark.parametrize("iban", [AT_IBAN, DE_IBAN, GB_IBAN])
    def test_any_single_substitution_detected(self, iban):
        for i, c in enumerate(iban):
            if c.isdigit():
                swapped = str((int(c) + 1) % 10)
            else:
                swapped = chr((ord(c) - ord("A") + 1) % 26 + ord("A"))
            mutated = iban[:i] + swapped + iban[i + 1:]
            assert not is_valid_iban(mutated), mutated

    def test_format(self):
        assert format_iban(AT_IBAN) == "AT61 1904 3002 3457 3201"

    def test_details_austrian(self):
        result = validate_iban_details(AT_IBAN)
        assert result.valid
        assert result.country_code == "AT"
        assert result.bank_code == "19043"
        assert result.bic == "BKAUATWW"
        assert result.bank_name == "Bank Austria (Landesdirektion)"

    def test_details_german_bank_code(self):
        result = validate_iban_details(DE_IBAN)
        assert result.bank_code == "37040044"
        assert result.bic == ""

    def test_details_invalid(self):
        result = validate_iban_details("AT611904300234573202")
        assert not result.valid
        assert "check digit" in result.error
        assert result.to_dict()["valid"] is False


class TestBIC:
    @pytest.mark.parametrize("bic", ["BKAUATWW", "GIBAATWWXXX", "rlnwatww"])
    def test_valid(self, bic):
        assert is_valid_bic(bic)

    @pytest.mark.parametrize("bic", ["BKAU", "BKAUATWWX", "1KAUATWW"])
    def test_invalid(self, bic):
        assert not is_valid_bic(bic)
        with pytest.raises(IdentifierError):
            validate_bic(bic)

    def test_lookup_strips_whitespace(self):
        assert lookup_austrian_bank(" 11000 ").bic == "BKAUATWW"
        assert lookup_austrian_bank("99999") is None

    def test_derive_from_iban(self):
        assert derive_bic_from_iban(AT_IBAN) == "BKAUATWW"
        assert derive_bic_from_iban(DE_IBAN) == ""


# ---------------------------------------------------------------------------
# Credit transfer
# ---------------------------------------------------------------------------

class TestCreditTransfer:
    def test_build_assigns_ids(self):
        ct = _make_transfer(
            CreditTransaction(100, PartyInfo("A"), Account(DE_IBAN)),
            CreditTransaction(200, PartyInfo("B"), Account(DE_IBAN), end_to_end_id="BATCH-1-0001"),
            CreditTransaction(300, PartyInfo("C"), Account(DE_IBAN)),
        )
        assert [t.instruction_id for t in ct.transactions] == ["TXN-1", "TXN-2", "TXN-3"]
        # the generated id skips the one already taken
        assert [t.end_to_end_id for t in ct.transactions] == ["BATCH-1-0002", "BATCH-1-0001", "BATCH-1-0003"]
        assert ct.number_of_txs == 3
        assert ct.control_sum == 600

    def test_account_normalized(self):
        acct = Account("de89 3704 0044 0532 0130 00", " cobadeffxxx ")
        assert acct.iban == DE_IBAN
        assert acct.bic == "COBADEFFXXX"

    def test_execution_date_defaults_to_creation(self):
        assert _make_transfer(execution_date=None).requested_execution_date == date(2025, 3, 1)

    def test_valid(self):
        assert _make_transfer().validate().valid

    def test_validation_codes(self):
        ct = CreditTransfer(
            message_id="X" * 36,
            debtor=PartyInfo(""),
            debtor_account=Account("AT611904300234573202", "BAD"),
            transactions=[
                CreditTransaction(0, PartyInfo(""), Account(""), end_to_end_id="E1"),
                CreditTransaction(5, PartyInfo("ok"), Account(DE_IBAN), end_to_end_id="E1"),
                CreditTransaction(5, PartyInfo("ok"), Account(DE_IBAN)),
            ],
        )
        codes = ct.validate().codes()
        for code in ("message_id", "debtor", "debtor_account", "bic", "amount",
                     "creditor_name", "creditor_iban", "end_to_end_id"):
            assert code in codes
        assert codes.count("end_to_end_id") == 2

    def test_empty_batch(self):
        ct = CreditTransfer("M", PartyInfo("D"), Account(AT_IBAN))
        assert ct.validate().codes() == ["transactions"]


class TestPain001:
    def test_structure(self):
        text = generate_pain001(_make_transfer()).decode("utf-8")
        assert 'xmlns="urn:iso:std:iso:20022:tech:xsd:pain.001.001.03"' in text
        assert "<MsgId>BATCH-1</MsgId>" in text
        assert "<CreDtTm>2025-03-01T10:00:00</CreDtTm>" in text
        assert "<NbOfTxs>1</NbOfTxs>" in text
        assert "<CtrlSum>125.50</CtrlSum>" in text
        assert "<PmtInfId>BATCH-1-001</PmtInfId>" in text
        assert "<ReqdExctnDt>2025-03-03</ReqdExctnDt>" in text
        assert '<InstdAmt Ccy="EUR">125.50</InstdAmt>' in text
        assert "<ChrgBr>SLEV</ChrgBr>" in text
        assert "<Ustrd>RE-77</Ustrd>" in text

    def test_missing_bic_not_provided(self):
        text = generate_pain001(_make_transfer()).decode("utf-8")
        assert "<Id>NOTPROVIDED</Id>" in text
        assert "<CdtrAgt>" not in text

    def test_bic_written(self):
        tx = CreditTransaction(100, PartyInfo("A"), Account(DE_IBAN, "COBADEFFXXX"))
        text = generate_pain001(_make_transfer(tx, debtor_bic="BKAUATWW")).decode("utf-8")
        assert "<BIC>BKAUATWW</BIC>" in text
        assert "<BIC>COBADEFFXXX</BIC>" in text
        assert "NOTPROVIDED" not in text

    def test_remittance_truncated(self):
        tx = CreditTransaction(100, PartyInfo("A"), Account(DE_IBAN), remittance_info="x" * 200)
        text = generate_pain001(_make_transfer(tx)).decode("utf-8")
        assert f"<Ustrd>{'x' * 140}</Ustrd>" in text

    def test_invalid_refused(self):
        tx = CreditTransaction(0, PartyInfo("A"), Account(DE_IBAN))
        with pytest.raises(DocumentValidationError):
            generate_pain001(_make_transfer(tx))

    def test_round_trip(self):
        ct = _make_transfer(
            CreditTransaction(12550, PartyInfo("Lieferant AG"), Account(DE_IBAN), remittance_info="RE-77"),
            CreditTransaction(99, PartyInfo("Zweiter"), Account(GB_IBAN, "WESTGB2L"), currency="EUR"),
        )
        back = parse_pain001(generate_pain001(ct))
        assert back.to_dict() == ct.to_dict()

    def test_parse_not_pain001(self):
        with pytest.raises(CodecError, match="CstmrCdtTrfInitn"):
            parse_pain001(b"<Document><Other/></Document>")

    def test_parse_no_payment_block(self):
        with pytest.raises(CodecError, match="PmtInf"):
            parse_pain001(b"<Document><CstmrCdtTrfInitn><GrpHdr/></CstmrCdtTrfInitn></Document>")


class TestCreditTransferCSV:
    def test_parse(self):
        data = (
            "\ufeffCreditor_Name,creditor_iban,amount,creditor_bic,reference\n"
            f"Lieferant AG,{DE_IBAN},\"1.234,56\",cobadeff,RE-1\n"
            "\n"
            f"Zweiter,{GB_IBAN},10,,\n"
        )
        txs = parse_credit_transfer_csv(data)
        assert [t.amount for t in txs] == [123456, 1000]
        assert txs[0].creditor_account.bic == "COBADEFF"
        assert txs[0].end_to_end_id == txs[0].remittance_info == "RE-1"
        assert txs[1].end_to_end_id == ""
        assert txs[1].currency == "EUR"

    def test_ids_assigned_by_build(self):
        txs = parse_credit_transfer_csv(f"creditor_name,creditor_iban,amount\nA,{DE_IBAN},1\n")
        ct = _make_transfer(*txs)
        assert ct.transactions[0].end_to_end_id == "BATCH-1-0001"

    def test_missing_columns(self):
        with pytest.raises(CodecError, match="missing column.*creditor_iban, amount"):
            parse_credit_transfer_csv("creditor_name\nA\n")

    def test_bad_amount_names_line(self):
        with pytest.raises(CodecError, match="CSV line 3"):
            parse_credit_transfer_csv(f"creditor_name,creditor_iban,amount\nA,{DE_IBAN},1\nB,{DE_IBAN},viel\n")

    def test_no_rows(self):
        with pytest.raises(CodecError, match="no transactions"):
            parse_credit_transfer_csv("creditor_name,creditor_iban,amount\n")


# ---------------------------------------------------------------------------
# Direct debit
# ---------------------------------------------------------------------------

class TestDirectDebit:
    def test_collection_date_default(self):
        assert _make_debit().requested_collection_date == date(2025, 3, 6)

    def test_valid(self):
        assert _make_debit().validate().valid

    def test_validation_codes(self):
        dd = DirectDebit(
            message_id="DD-2",
            creditor=PartyInfo(""),
            creditor_account=Account(""),
            creditor_id="",
            transactions=[_make_debit_tx(name="", iban="DE00", mandate="", mandate_date=None,
                                         seq="ONCE", end_to_end_id="E")],
        )
        codes = dd.validate().codes()
        for code in ("creditor", "creditor_account", "creditor_id", "debtor_name",
                     "debtor_iban", "mandate_id", "mandate_date", "sequence_type"):
            assert code in codes


class TestPain008:
    def test_one_block_per_sequence_type(self):
        dd = _make_debit(
            _make_debit_tx(seq="FRST", mandate="M-1"),
            _make_debit_tx(seq="RCUR", mandate="M-2", amount=500),
            _make_debit_tx(seq="FRST", mandate="M-3"),
        )
        text = generate_pain008(dd).decode("utf-8")
        assert text.count("<PmtInf>") == 2
        assert text.index("<SeqTp>FRST</SeqTp>") < text.index("<SeqTp>RCUR</SeqTp>")
        assert "<PmtInfId>DD-1-001</PmtInfId>" in text
        assert "<PmtInfId>DD-1-002</PmtInfId>" in text
        assert "<CtrlSum>44.80</CtrlSum>" in text
        assert "<CtrlSum>39.80</CtrlSum>" in text

    def test_structure(self):
        text = generate_pain008(_make_debit()).decode("utf-8")
        assert 'xmlns="urn:iso:std:iso:20022:tech:xsd:pain.008.001.02"' in text
        assert "<PmtMtd>DD</PmtMtd>" in text
        assert "<Cd>CORE</Cd>" in text
        assert "<ReqdColltnDt>2025-03-06</ReqdColltnDt>" in text
        assert "<Id>AT98ZZZ00000012345</Id>" in text
        assert "<Prtry>SEPA</Prtry>" in text
        assert "<MndtId>M-1</MndtId>" in text
        assert "<DtOfSgntr>2024-06-01</DtOfSgntr>" in text
        assert '<InstdAmt Ccy="EUR">19.90</InstdAmt>' in text

    def test_invalid_refused(self):
        with pytest.raises(DocumentValidationError):
            generate_pain008(_make_debit(_make_debit_tx(seq="ONCE")))

    def test_round_trip_merges_blocks(self):
        dd = _make_debit(
            _make_debit_tx(seq="FRST", mandate="M-1"),
            _make_debit_tx(seq="RCUR", mandate="M-2", amount=500, remittance_info="Beitrag"),
        )
        back = parse_pain008(generate_pain008(dd))
        assert back.to_dict() == dd.to_dict()

    def test_parse_not_pain008(self):
        with pytest.raises(CodecError, match="CstmrDrctDbtInitn"):
            parse_pain008(b"<Document/>")
