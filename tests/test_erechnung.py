"""
tests/test_erechnung.py
~~~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.erechnung — totals, EN 16931 business rules, the JSON
shape and both XML dialects (UBL / CII).
"""

from __future__ import annotations

import json
from decimal import Decimal

import pytest

from amtsbote.erechnung import (
    BankAccount,
    Invoice,
    Line,
    TaxSubtotal,
    decode_cii,
    decode_ubl,
    encode_cii,
    encode_ubl,
    validate_invoice,
)
from amtsbote.erechnung.model import SEPA_CREDIT_TRANSFER, decimal_text
from amtsbote.exceptions import CodecError


def _make_line(id="1", price=1000, qty="1", cat="S", pct="20", **kw) -> Line:
    return Line(id=id, description=kw.pop("description", "Artikel"), quantity=Decimal(qty),
                unit_code=kw.pop("unit_code", "C62"), unit_price=price,
                tax_category=cat, tax_percent=Decimal(pct), **kw)


class TestCalcTotals:
    def test_sample_totals(self, sample_invoice):
        inv = sample_invoice
        assert [l.line_total for l in inv.lines] == [120000, 9100]
        assert [(ts.tax_category, ts.taxable_amount, ts.tax_amount) for ts in inv.tax_subtotals] == [
            ("S", 120000, 24000),
            ("AA", 9100, 910),
        ]
        assert inv.tax_exclusive_amount == 129100
        assert inv.tax_amount == 24910
        assert inv.tax_inclusive_amount == 154010
        assert inv.payable_amount == 154010

    def test_idempotent(self, sample_invoice):
        before = sample_invoice.to_dict()
        assert sample_invoice.calc_totals().to_dict() == before

    def test_groups_same_rate(self):
        inv = Invoice(lines=[_make_line("1"), _make_line("2", price=500)]).calc_totals()
        assert len(inv.tax_subtotals) == 1
        assert inv.tax_subtotals[0].taxable_amount == 1500

    def test_fractional_quantity_rounds_half_even(self):
        # 0.5 * 25 = 12.5 → 12, 1.5 * 25 = 37.5 → 38
        a = _make_line(price=25, qty="0.5")
        b = _make_line(price=25, qty="1.5")
        assert a.calc_total() == 12
        assert b.calc_total() == 38

    def test_group_tax_rounding(self):
        # 13% of 1050 = 136.5 → 136
        inv = Invoice(lines=[_make_line(price=1050, cat="AA", pct="13")]).calc_totals()
        assert inv.tax_amount == 136

    def test_exemption_reason_survives(self):
        inv = Invoice(
            lines=[_make_line(cat="E", pct="0")],
            tax_subtotals=[TaxSubtotal("E", Decimal("0"), exemption_reason="Kleinunternehmer")],
        ).calc_totals()
        assert inv.tax_subtotals[0].exemption_reason == "Kleinunternehmer"
        assert inv.tax_amount == 0


class TestValidation:
    def test_sample_valid(self, sample_invoice):
        result = validate_invoice(sample_invoice)
        assert result.valid, result.errors
        assert result.warnings == []

    def test_empty_invoice(self):
        codes = validate_invoice(Invoice(invoice_type="", currency="")).codes()
        for code in ("BR-02", "BR-03", "BR-04", "BR-05", "BR-06", "BR-07", "BR-16"):
            assert code in codes

    def test_unsupported_type(self, sample_invoice):
        sample_invoice.invoice_type = "999"
        assert validate_invoice(sample_invoice).codes() == ["BR-04"]

    def test_party_fields(self, sample_invoice):
        sample_invoice.seller.country = ""
        sample_invoice.buyer.name = ""
        assert validate_invoice(sample_invoice).codes() == ["BR-09", "BT-44"]

    def test_line_rules(self, sample_invoice):
        line = sample_invoice.lines[0]
        line.quantity = Decimal(0)
        line.unit_code = ""
        line.unit_price = 0
        codes = validate_invoice(sample_invoice).codes()
        assert {"BR-22", "BR-23", "BR-26"} <= set(codes)
        assert validate_invoice(sample_invoice).errors[0].field == "lines[1].quantity"

    def test_standard_rate_must_be_positive(self):
        inv = Invoice(lines=[_make_line(pct="0")])
        assert "BR-S-05" in validate_invoice(inv).codes()

    @pytest.mark.parametrize("cat,code", [("Z", "BR-Z-05"), ("E", "BR-E-05"), ("AE", "BR-AE-05")])
    def test_zero_rate_categories(self, cat, code):
        inv = Invoice(lines=[_make_line(cat=cat, pct="20")])
        assert code in validate_invoice(inv).codes()

    def test_unknown_category(self):
        assert "BR-CO-18" in validate_invoice(Invoice(lines=[_make_line(cat="Q")])).codes()

    def test_stale_totals_warn(self, sample_invoice):
        sample_invoice.lines[0].line_total += 1
        result = validate_invoice(sample_invoice)
        assert result.valid
        assert [w.code for w in result.warnings] == ["BR-CO-10"]


class TestJSON:
    def test_bank_account_implies_sepa_credit_transfer(self):
        inv = Invoice.from_dict({"id": "1", "bank_account": {"iban": "AT611904300234573201"}})
        assert inv.payment_means == SEPA_CREDIT_TRANSFER
        assert Invoice(id="2").payment_means == ""

    def test_built_invoice_keeps_bank_account_in_xml(self):
        account = BankAccount(iban="AT611904300234573201", bic="BKAUATWW", name="S")
        inv = Invoice(id="1", lines=[_make_line()], bank_account=account)
        assert decode_ubl(encode_ubl(inv)).bank_account == account
        assert decode_cii(encode_cii(inv)).bank_account == account

    def test_dict_round_trip(self, sample_invoice, sample_invoice_dict):
        assert Invoice.from_dict(sample_invoice_dict) == sample_invoice

    def test_numbers_stay_integral(self, sample_invoice_dict):
        line = sample_invoice_dict["lines"][0]
        assert line["quantity"] == 10
        assert isinstance(line["quantity"], int)
        assert line["tax_percent"] == 20

    def test_party_dict_drops_empty(self, sample_invoice_dict):
        assert "email" not in sample_invoice_dict["seller"]
        assert sample_invoice_dict["seller"]["vat_number"] == "ATU12345678"

    def test_defaults_applied(self):
        inv = Invoice.from_dict({"id": "X", "lines": [{"id": "1", "quantity": "2.5", "unit_price": 100}]})
        assert inv.invoice_type == "380"
        assert inv.currency == "EUR"
        assert inv.lines[0].quantity == Decimal("2.5")

    def test_quantity_not_a_number(self):
        with pytest.raises(CodecError, match="quantity"):
            Invoice.from_dict({"lines": [{"quantity": "viele"}]})

    def test_unit_price_must_be_cents(self):
        with pytest.raises(CodecError, match="cents"):
            Invoice.from_dict({"lines": [{"unit_price": "12.50"}]})

    def test_bad_date(self):
        with pytest.raises(CodecError, match="issue_date"):
            Invoice.from_dict({"issue_date": "15.03.2025"})

    def test_not_an_object(self):
        with pytest.raises(CodecError):
            Invoice.from_json("[]")

    def test_invalid_json(self):
        with pytest.raises(CodecError, match="invalid invoice JSON"):
            Invoice.from_json("{")

    def test_file_round_trip(self, sample_invoice, tmp_path):
        path = tmp_path / "rechnung.json"
        sample_invoice.to_json(path)
        assert Invoice.from_file(path) == sample_invoice
        assert json.loads(path.read_text(encoding="utf-8"))["id"] == "RE-2025-001"

    def test_summary(self, sample_invoice):
        text = sample_invoice.summary()
        assert "Rechnung RE-2025-001" in text
        assert "Muster GmbH" in text
        assert "1540.10" in text


class TestUBL:
    def test_round_trip(self, sample_invoice):
        assert decode_ubl(encode_ubl(sample_invoice)) == sample_invoice

    def test_bank_account_without_payment_means(self, sample_invoice):
        sample_invoice.payment_means = ""
        back = decode_ubl(encode_ubl(sample_invoice))
        assert back.bank_account == BankAccount(iban="AT611904300234573201", bic="BKAUATWW", name="Muster GmbH")
        assert back.payment_means == SEPA_CREDIT_TRANSFER

    def test_structure(self, sample_invoice):
        text = encode_ubl(sample_invoice).decode("utf-8")
        assert "<cbc:CustomizationID>" in text
        assert '<cbc:PayableAmount currencyID="EUR">1540.10</cbc:PayableAmount>' in text
        assert '<cbc:InvoicedQuantity unitCode="HUR">10</cbc:InvoicedQuantity>' in text
        assert "<cbc:ID>AT611904300234573201</cbc:ID>" in text

    def test_encode_calculates_missing_totals(self):
        inv = Invoice(id="1", lines=[_make_line()])
        text = encode_ubl(inv).decode("utf-8")
        assert '<cbc:TaxAmount currencyID="EUR">2.00</cbc:TaxAmount>' in text
        assert inv.payable_amount == 1200

    def test_optional_item_fields(self, sample_invoice):
        sample_invoice.lines[0].gtin = "4012345678901"
        sample_invoice.lines[0].item_id = "SKU-1"
        sample_invoice.lines[0].detailed_description = "Stundensatz"
        back = decode_ubl(encode_ubl(sample_invoice))
        assert back.lines[0].gtin == "4012345678901"
        assert back.lines[0].item_id == "SKU-1"
        assert back.lines[0].detailed_description == "Stundensatz"

    def test_wrong_root(self):
        with pytest.raises(CodecError, match="expected UBL Invoice"):
            decode_ubl(b"<CreditNote/>")

    def test_malformed(self):
        with pytest.raises(CodecError):
            decode_ubl(b"<Invoice>")


class TestCII:
    def test_round_trip(self, sample_invoice):
        assert decode_cii(encode_cii(sample_invoice)) == sample_invoice

    def test_bank_account_without_payment_means(self, sample_invoice):
        sample_invoice.payment_means = ""
        back = decode_cii(encode_cii(sample_invoice))
        assert back.bank_account == sample_invoice.bank_account
        assert back.payment_means == SEPA_CREDIT_TRANSFER

    def test_structure(self, sample_invoice):
        text = encode_cii(sample_invoice).decode("utf-8")
        assert "<rsm:CrossIndustryInvoice" in text
        assert '<udt:DateTimeString format="102">20250315</udt:DateTimeString>' in text
        assert "<ram:IBANID>AT611904300234573201</ram:IBANID>" in text
        assert '<ram:ID schemeID="VA">ATU12345678</ram:ID>' in text

    def test_contacts_and_tax_id(self, sample_invoice):
        sample_invoice.seller.contact_name = "Max"
        sample_invoice.seller.contact_phone = "+43 1 234"
        sample_invoice.seller.email = "office@muster.at"
        sample_invoice.seller.tax_id = "12-345/6789"
        back = decode_cii(encode_cii(sample_invoice))
        assert back.seller == sample_invoice.seller

    def test_bad_date(self):
        data = (
            b'<rsm:CrossIndustryInvoice xmlns:rsm="urn:x" xmlns:ram="urn:y" xmlns:udt="urn:z">'
            b"<rsm:ExchangedDocument><ram:IssueDateTime><udt:DateTimeString>2025-03-15"
            b"</udt:DateTimeString></ram:IssueDateTime></rsm:ExchangedDocument>"
            b"</rsm:CrossIndustryInvoice>"
        )
        with pytest.raises(CodecError, match="YYYYMMDD"):
            decode_cii(data)

    def test_wrong_root(self):
        with pytest.raises(CodecError):
            decode_cii(b"<Invoice/>")


class TestHelpers:
    @pytest.mark.parametrize("value,text", [("20.00", "20"), ("2.50", "2.5"), ("0", "0"), ("100", "100")])
    def test_decimal_text(self, value, text):
        assert decimal_text(Decimal(value)) == text
