"""
tests/test_firmenbuch.py
~~~~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.firmenbuch — search and extract decoding, the SOAP
client and the watchlist.
"""

from __future__ import annotations

import json
import os
import stat
from datetime import date

import pytest

from amtsbote.exceptions import CodecError, FirmenbuchError
from amtsbote.firmenbuch import (
    FBExtract,
    FBPerson,
    FBStatus,
    FirmenbuchClient,
    Funktion,
    Watchlist,
)
from amtsbote.firmenbuch.watchlist import diff_snapshots
from amtsbote.identifiers import IdentifierError
from conftest import sent_body, soap_response

FB_URL = "https://fb.test/abfrage"

EXTRACT_XML = """
<FBAuszug xmlns="https://www.justiz.gv.at/firmenbuch">
  <FN>FN123456a</FN>
  <Firma>Muster GmbH</Firma>
  <Rechtsform>GmbH</Rechtsform>
  <Sitz>Wien</Sitz>
  <Adresse><Strasse>Hauptstraße 1</Strasse><PLZ>1010</PLZ><Ort>Wien</Ort><Land>AT</Land></Adresse>
  <Stammkapital>3500000</Stammkapital>
  <Status>{status}</Status>
  <Gruendungsdatum>2010-05-01</Gruendungsdatum>
  <Geschaeftsfuehrer>
    <Person><Vorname>Max</Vorname><Nachname>Muster</Nachname><Funktion>GF</Funktion>
      <VertretungsArt>selbstaendig</VertretungsArt><Seit>2010-05-01</Seit></Person>
  </Geschaeftsfuehrer>
  <Gesellschafter>
    <Gesellschafter><Name>Holding AG</Name><FN>FN99999z</FN><Anteil>7500</Anteil>
      <Stammeinlage>2625000</Stammeinlage></Gesellschafter>
  </Gesellschafter>
  <UID>ATU12345678</UID>
</FBAuszug>
"""


def _extract_response(mocker, status: str = "aktiv"):
    return soap_response(mocker, EXTRACT_XML.format(status=status))


def _make_extract(fn: str = "FN123456a", status: str = "aktiv", **kw) -> FBExtract:
    return FBExtract(fn=fn, firma=kw.pop("firma", "Muster GmbH"), status=status, **kw)


@pytest.fixture
def client(mock_post):
    c = FirmenbuchClient("KEY-1", endpoint=FB_URL, max_retries=0)
    yield c
    c.close()


@pytest.fixture
def watchlist(tmp_path) -> Watchlist:
    return Watchlist(tmp_path / "watch.json")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TestModels:
    def test_status_compares_to_wire_string(self):
        assert _make_extract().is_active
        assert _make_extract(status="geloescht").status == FBStatus.GELOESCHT
        assert not _make_extract(status="insolvent").is_active

    def test_person_label(self):
        assert FBPerson("Max", "Muster", funktion=Funktion.PROKURIST.value).funktion_label == "Prokurist"
        assert FBPerson("Max", "Muster", funktion="XYZ").funktion_label == "XYZ"

    def test_dict_round_trip(self):
        ext = _make_extract(
            gruendungsdatum=date(2010, 5, 1),
            geschaeftsfuehrer=[FBPerson("Max", "Muster", "GF", seit=date(2010, 5, 1))],
        )
        assert FBExtract.from_dict(ext.to_dict()) == ext

    def test_canonical_json_ignores_key_order(self):
        a = _make_extract().to_dict()
        b = dict(reversed(list(a.items())))
        assert FBExtract.from_dict(b).canonical_json() == _make_extract().canonical_json()

    def test_summary(self):
        text = _make_extract(stammkapital=3500000, uid="ATU12345678").summary()
        assert "Muster GmbH" in text
        assert "35000.00 EUR" in text
        assert "ATU12345678" in text


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class TestSearch:
    def test_search(self, client, mock_post, mocker):
        mock_post.return_value = soap_response(mocker, (
            "<FBSucheAntwort><Anzahl>42</Anzahl>"
            "<Treffer><FN>FN123456a</FN><Firma>Muster GmbH</Firma><Rechtsform>GmbH</Rechtsform>"
            "<Sitz>Wien</Sitz><Status>aktiv</Status></Treffer>"
            "<Treffer><FN>FN654321b</FN><Firma>Muster OG</Firma></Treffer>"
            "</FBSucheAntwort>"
        ))
        resp = client.search("Muster", ort="Wien", max_hits=2)
        assert resp.total_count == 42
        assert [r.fn for r in resp.results] == ["FN123456a", "FN654321b"]
        body = sent_body(mock_post)
        assert "<Name>Muster</Name>" in body
        assert "<Ort>Wien</Ort>" in body
        assert "<MaxHits>2</MaxHits>" in body
        assert "<FN>" not in body
        assert mock_post.call_args.kwargs["headers"]["SOAPAction"] == "Search"
        assert mock_post.call_args.args[0] == FB_URL

    def test_api_key_in_header(self, client, mock_post, mocker):
        mock_post.return_value = soap_response(mocker, "<FBSucheAntwort/>")
        resp = client.search(fn="fn 123456 A")
        assert resp.total_count == 0
        body = sent_body(mock_post)
        assert "<auth:APIKey>KEY-1</auth:APIKey>" in body
        assert "<FN>FN123456a</FN>" in body

    def test_error_reply(self, client, mock_post, mocker):
        mock_post.return_value = soap_response(mocker, "<FBAntwort><rc>-3</rc><msg>API-Key ungültig</msg></FBAntwort>")
        with pytest.raises(FirmenbuchError) as exc_info:
            client.search("Muster")
        assert exc_info.value.code == -3
        assert exc_info.value.server_message == "API-Key ungültig"

    def test_unexpected_element(self, client, mock_post, mocker):
        mock_post.return_value = soap_response(mocker, "<Irgendwas/>")
        with pytest.raises(CodecError, match="expected FBSucheAntwort"):
            client.search("Muster")


class TestExtract:
    def test_extract(self, client, mock_post, mocker):
        mock_post.return_value = _extract_response(mocker)
        ext = client.extract("FN123456A")
        assert ext.fn == "FN123456a"
        assert ext.is_active
        assert ext.adresse.plz == "1010"
        assert str(ext.adresse) == "Hauptstraße 1, 1010 Wien, AT"
        assert ext.stammkapital == 3500000
        assert ext.gruendungsdatum == date(2010, 5, 1)
        assert ext.geschaeftsfuehrer[0].full_name == "Max Muster"
        assert ext.geschaeftsfuehrer[0].funktion_label == "Geschäftsführer"
        assert ext.gesellschafter[0].anteil_prozent == 75.0
        assert ext.gesellschafter[0].fn == "FN99999z"
        assert mock_post.call_args.kwargs["headers"]["SOAPAction"] == "Extract"

    def test_invalid_fn_never_sent(self, client, mock_post):
        with pytest.raises(IdentifierError):
            client.extract("123456")
        mock_post.assert_not_called()

    def test_bad_date(self, client, mock_post, mocker):
        mock_post.return_value = soap_response(
            mocker, "<FBAuszug><FN>FN1a</FN><Gruendungsdatum>01.05.2010</Gruendungsdatum></FBAuszug>",
        )
        with pytest.raises(CodecError, match="Gruendungsdatum"):
            client.extract("FN1a")

    def test_endpoint_from_config(self, mock_post):
        from amtsbote.config import cfg

        with FirmenbuchClient("K", test_mode=True) as c:
            assert c.endpoint == cfg.firmenbuch_test_endpoint


# ---------------------------------------------------------------------------
# Watchlist
# ---------------------------------------------------------------------------

class TestWatchlistCrud:
    def test_add_persists(self, watchlist, tmp_path):
        watchlist.add("fn123456a", firma="Muster GmbH")
        data = json.loads((tmp_path / "watch.json").read_text(encoding="utf-8"))
        assert data["entries"][0]["fn"] == "FN123456a"
        assert len(Watchlist(tmp_path / "watch.json")) == 1

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_mode(self, watchlist):
        watchlist.add("FN123456a")
        assert stat.S_IMODE(watchlist.path.stat().st_mode) == 0o600

    def test_add_is_upsert(self, watchlist):
        watchlist.add("FN123456a", firma="Alt", notes="Kunde")
        watchlist.find("FN123456a").enabled = False
        entry = watchlist.add("FN123456a", firma="Neu")
        assert len(watchlist) == 1
        assert entry.firma == "Neu"
        assert entry.notes == "Kunde"
        assert entry.enabled

    def test_add_invalid_fn(self, watchlist):
        with pytest.raises(IdentifierError):
            watchlist.add("123")
        assert len(watchlist) == 0

    def test_remove(self, watchlist):
        watchlist.add("FN123456a")
        assert watchlist.remove("fn123456A")
        assert not watchlist.remove("FN123456a")

    def test_default_path(self, isolated_home):
        wl = Watchlist()
        assert wl.path == isolated_home / "fb-watchlist.json"

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "watch.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CodecError):
            Watchlist(path)

    def test_diff_snapshots(self):
        assert diff_snapshots({"a": 1, "b": {"x": 1, "y": 2}}, {"a": 1, "b": {"y": 2, "x": 1}, "c": 3}) == ["c"]


class TestWatchlistCheck:
    def test_first_check_counts_as_change(self, watchlist, mocker):
        watchlist.add("FN123456a")
        client = mocker.Mock()
        client.extract.return_value = _make_extract()
        result = watchlist.check_all(client)
        assert (result.items_checked, result.items_changed, result.items_failed) == (1, 1, 0)
        change = result.changes[0]
        assert change.first_check
        assert change.new_status == "aktiv"
        entry = watchlist.find("FN123456a")
        assert entry.firma == "Muster GmbH"
        assert entry.last_check is not None
        assert entry.snapshot["status"] == "aktiv"

    def test_unchanged_then_changed(self, watchlist, mocker):
        watchlist.add("FN123456a")
        client = mocker.Mock()
        client.extract.return_value = _make_extract()
        watchlist.check_all(client)

        assert watchlist.check_all(client).items_changed == 0

        client.extract.return_value = _make_extract(status="in_liquidation")
        result = watchlist.check_all(client)
        change = result.changes[0]
        assert (change.old_status, change.new_status) == ("aktiv", "in_liquidation")
        assert change.changed_fields == ["status"]
        assert not change.first_check

    def test_failure_leaves_entry_untouched(self, watchlist, mocker):
        watchlist.add("FN123456a")
        watchlist.add("FN654321b")
        client = mocker.Mock()

        def extract(fn, cancel=None):
            if fn == "FN654321b":
                raise FirmenbuchError("Firmenbuch error (code 4): nicht gefunden", code=4)
            return _make_extract(fn=fn)

        client.extract.side_effect = extract
        result = watchlist.check_all(client, max_workers=2)
        assert (result.items_checked, result.items_changed, result.items_failed) == (2, 1, 1)
        assert "nicht gefunden" in result.failed["FN654321b"]
        failed = watchlist.find("FN654321b")
        assert failed.snapshot is None
        assert failed.last_check is None

    def test_disabled_entries_skipped(self, watchlist, mocker):
        watchlist.add("FN123456a")
        watchlist.find("FN123456a").enabled = False
        client = mocker.Mock()
        result = watchlist.check_all(client)
        assert result.items_checked == 0
        client.extract.assert_not_called()

    def test_state_survives_reload(self, watchlist, mocker):
        watchlist.add("FN123456a")
        client = mocker.Mock()
        client.extract.return_value = _make_extract()
        watchlist.check_all(client)
        reloaded = Watchlist(watchlist.path)
        assert reloaded.find("FN123456a").last_status == "aktiv"
        assert reloaded.check_all(client).items_changed == 0

    def test_against_soap_client(self, watchlist, client, mock_post, mocker):
        mock_post.return_value = _extract_response(mocker, status="insolvent")
        watchlist.add("FN123456a")
        result = watchlist.check_all(client)
        assert result.changes[0].new_status == "insolvent"
        assert result.to_dict()["items_changed"] == 1
