"""
tests/test_zm.py
~~~~~~~~~~~~~~~~
Tests for amtsbote.tax.zm — entry rules, statement validation, XML, JSON
and the CSV reader.
"""

from __future__ import annotations

import pytest

from amtsbote.exceptions import CodecError, DocumentValidationError
from amtsbote.models import DocumentStatus
from amtsbote.tax import ZM, ZMEntry, parse_zm_csv


def _make_zm(*extra: ZMEntry) -> ZM:
    return ZM.build(2025, 1, [
        ZMEntry("DE123456789", "DE", "L", 500000),
        ZMEntry("FR12345678901", "FR", "S", 250000),
        *extra,
    ])


class TestEntry:
    def test_valid_entry(self):
        assert ZMEntry("DE123456789", "DE", "L", 1).validate().valid

    def test_austrian_partner_rejected(self):
        result = ZMEntry("ATU12345678", "AT", "L", 1000).validate()
        assert result.codes() == ["country_code"]
        assert "Austrian" in result.errors[0].message

    def test_country_code_length(self):
        assert ZMEntry("DE123456789", "DEU", "L", 1).validate().codes() == ["country_code"]

    def test_amount_must_be_positive(self):
        assert ZMEntry("DE123456789", "DE", "L", 0).validate().codes() == ["amount"]

    def test_delivery_type(self):
        assert ZMEntry("DE123456789", "DE", "X", 1).validate().codes() == ["delivery_type"]

    def test_missing_uid(self):
        assert "partner_uid" in ZMEntry("", "DE", "L", 1).validate().codes()

    def test_from_dict_normalizes(self):
        e = ZMEntry.from_dict({"partner_uid": " de123456789 ", "country_code": "de",
                               "delivery_type": "s", "amount": "100"})
        assert e == ZMEntry("DE123456789", "DE", "S", 100)


class TestStatement:
    def test_total_and_valid(self):
        zm = _make_zm()
        assert zm.total_amount == 750000
        assert zm.validate().valid

    def test_austrian_entry_invalidates(self):
        zm = _make_zm(ZMEntry("ATU12345678", "AT", "L", 1000))
        result = zm.validate()
        assert not result.valid
        assert "country_code" in result.codes()
        assert result.errors[0].field == "entries[2].country_code"

    def test_empty_statement(self):
        assert ZM.build(2025, 1).validate().codes() == ["entries"]

    def test_period_bounds(self):
        codes = ZM.build(1999, 5, [ZMEntry("DE123456789", "DE", "L", 1)]).validate().codes()
        assert codes == ["year", "quarter"]

    def test_period_string(self):
        assert _make_zm().period_string == "Q1/2025"

    def test_add_entry_rejects_invalid(self):
        zm = _make_zm()
        with pytest.raises(DocumentValidationError):
            zm.add_entry(ZMEntry("ATU12345678", "AT", "L", 1000))
        assert len(zm.entries) == 2

    def test_copy_as_draft(self):
        zm = _make_zm()
        zm.status = DocumentStatus.REJECTED
        fresh = zm.copy_as_draft()
        assert fresh.status is DocumentStatus.DRAFT
        assert fresh.entries == zm.entries
        assert fresh.entries[0] is not zm.entries[0]


class TestXML:
    def test_round_trip(self):
        zm = _make_zm()
        back = ZM.from_xml(zm.to_xml())
        assert (back.year, back.quarter) == (2025, 1)
        assert back.entries == zm.entries

    def test_amounts_in_euro(self):
        text = _make_zm().to_xml().decode("utf-8")
        assert "<Bemessungsgrundlage>5000.00</Bemessungsgrundlage>" in text
        assert "<Lieferart>S</Lieferart>" in text

    def test_invalid_refuses_to_encode(self):
        with pytest.raises(DocumentValidationError):
            ZM.build(2025, 1).to_xml()

    def test_wrong_root(self):
        with pytest.raises(CodecError):
            ZM.from_xml(b"<UVA/>")


class TestJSON:
    def test_to_dict(self):
        d = _make_zm().to_dict()
        assert d["period"] == "Q1/2025"
        assert d["total_amount"] == 750000
        assert len(d["entries"]) == 2

    def test_dict_round_trip(self):
        zm = _make_zm()
        zm.reference = "BN-9"
        back = ZM.from_dict(zm.to_dict())
        assert back.entries == zm.entries
        assert back.reference == "BN-9"

    def test_summary(self):
        text = _make_zm().summary()
        assert "ZM Q1/2025" in text
        assert "7500.00" in text


class TestCSV:
    def test_parse(self):
        data = (
            "partner_uid,country_code,delivery_type,amount\n"
            "DE123456789,de,l,500000\n"
            "\n"
            "FR12345678901,FR,S,250000\n"
        )
        entries = parse_zm_csv(data)
        assert entries == [
            ZMEntry("DE123456789", "DE", "L", 500000),
            ZMEntry("FR12345678901", "FR", "S", 250000),
        ]

    def test_parse_bytes_with_bom(self):
        data = "\ufeffpartner_uid,country_code,delivery_type,amount\nDE123456789,DE,L,1\n".encode("utf-8")
        assert len(parse_zm_csv(data)) == 1

    def test_header_only(self):
        with pytest.raises(CodecError, match="at least one data row"):
            parse_zm_csv("partner_uid,country_code,delivery_type,amount\n")

    def test_short_row_names_line(self):
        with pytest.raises(CodecError, match="line 2"):
            parse_zm_csv("h1,h2,h3,h4\nDE123456789,DE,L\n")

    def test_non_integer_amount(self):
        with pytest.raises(CodecError, match="line 2: amount"):
            parse_zm_csv("h1,h2,h3,h4\nDE123456789,DE,L,12.50\n")

    def test_invalid_entry_names_line(self):
        with pytest.raises(DocumentValidationError, match="line 3"):
            parse_zm_csv("h1,h2,h3,h4\nDE123456789,DE,L,1\nATU12345678,AT,L,1\n")
