"""
tests/test_dashboard.py
~~~~~~~~~~~~~~~~~~~~~~~
Tests for amtsbote.dashboard — per-account fan-out, failure isolation,
ordering and the text table.
"""

from __future__ import annotations

import re
import threading

import pytest

from amtsbote.credentials import Account, AccountType, MemoryCredentialStore
from amtsbote.dashboard import (
    Dashboard,
    ServiceResult,
    parse_service_filter,
    sort_results,
    summary,
)
from amtsbote.fonws import SoapTransport
from conftest import FO_BASE, http_response, soap

TIDS = {"A": "111111111111", "B": "222222222222", "C": "333333333333"}


def _entry(code: str) -> str:
    return (
        f"<databox><applkey>K-{code}</applkey><filebez>Dokument</filebez>"
        f"<ts_zust>2025-02-10</ts_zust><erlession>{code}</erlession></databox>"
    )


# databox contents per session token
MAILBOXES = {
    "TOKEN-111111111111": [_entry("E"), _entry("V"), _entry("B")],
    "TOKEN-333333333333": [_entry("B")],
}


def _portal(mocker, *, bad_tids=(), ping_status: int = 200):
    """A fake backend that answers each request by its operation and session."""

    def respond(url, data=None, headers=None, timeout=None):
        body = data.decode("utf-8")

        def tag(name: str) -> str:
            m = re.search(f"<{name}>(.*?)</{name}>", body)
            return m.group(1) if m else ""

        if "<Login" in body:
            if tag("tid") in bad_tids:
                inner = "<LoginResponse><rc>-4</rc><msg>Anmeldung fehlgeschlagen</msg></LoginResponse>"
            else:
                inner = f"<LoginResponse><rc>0</rc><id>TOKEN-{tag('tid')}</id></LoginResponse>"
        elif "<GetDataboxInfo" in body:
            entries = "".join(MAILBOXES.get(tag("id"), []))
            inner = f"<GetDataboxInfoResponse><rc>0</rc><result>{entries}</result></GetDataboxInfoResponse>"
        elif "<Logout" in body:
            inner = "<LogoutResponse><rc>0</rc></LogoutResponse>"
        elif "<Ping" in body:
            if ping_status != 200:
                return http_response(mocker, b"unavailable", ping_status)
            inner = "<PingResponse><ServerTime>2025-02-10T08:00:00</ServerTime></PingResponse>"
        elif "FBSuche" in body:
            inner = "<FBSucheAntwort><Anzahl>1</Anzahl></FBSucheAntwort>"
        else:
            raise AssertionError(f"unexpected request: {body}")
        return http_response(mocker, soap(inner))

    return respond


def _fo_store(*names: str) -> MemoryCredentialStore:
    return MemoryCredentialStore([
        Account(name=n, type=AccountType.FINANZONLINE.value, tid=TIDS[n], benid="WEBUSER", pin="pin")
        for n in names
    ])


@pytest.fixture
def quiet_transport(mock_post):
    t = SoapTransport(FO_BASE, max_retries=0, sleep=lambda _: None)
    yield t
    t.close()


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

class TestRun:
    def test_one_failing_login(self, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker, bad_tids={TIDS["B"]})
        results = Dashboard(_fo_store("A", "B", "C"), quiet_transport).run()

        assert [r.account for r in results] == ["B", "A", "C"]
        b, a, c = results
        assert b.status == "error"
        assert b.has_error
        assert "Invalid credentials" in b.error
        assert (a.status, a.pending_items, a.total_items) == ("pending", 2, 3)
        assert a.details == "3 docs, 2 require action"
        assert (c.status, c.pending_items) == ("ok", 0)
        assert [r.has_error for r in results] == [True, False, False]

    def test_every_session_logged_out(self, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker)
        Dashboard(_fo_store("A", "C"), quiet_transport).run()
        logouts = [c for c in mock_post.call_args_list if b"<Logout" in c.kwargs["data"]]
        assert len(logouts) == 2

    def test_mixed_services(self, memory_store, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker)
        results = {r.account: r for r in Dashboard(memory_store, quiet_transport).run()}
        assert results["lohn"].service_type == "elda"
        assert results["lohn"].details.startswith("connected")
        assert results["register"].details == "reachable, 1 hit(s)"
        assert results["register"].identifier == "KEY-…"
        assert results["firma-a"].identifier == "123456789012"

    def test_elda_unreachable_is_error(self, memory_store, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker, ping_status=503)
        results = Dashboard(memory_store, quiet_transport, services="elda").run()
        assert len(results) == 1
        assert results[0].status == "error"
        assert "503" in results[0].error

    def test_service_filter(self, memory_store, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker)
        results = Dashboard(memory_store, quiet_transport, services=["fb"]).run()
        assert [r.account for r in results] == ["register"]

    def test_named_accounts(self, quiet_transport, mock_post, mocker):
        mock_post.side_effect = _portal(mocker)
        results = Dashboard(_fo_store("A", "B", "C"), quiet_transport).run(["C", "nobody"])
        assert [r.account for r in results] == ["nobody", "C"]
        assert results[0].service_type == "unknown"
        assert "nobody" in results[0].error

    def test_unexpected_exception_isolated(self, quiet_transport, mocker):
        dash = Dashboard(_fo_store("A", "C"), quiet_transport)

        def flaky(account):
            if account.name == "A":
                raise RuntimeError("boom")
            return ServiceResult(account=account.name, service_type="finanzonline")

        mocker.patch.object(dash, "check_account", side_effect=flaky)
        results = dash.run()
        assert [r.account for r in results] == ["A", "C"]
        assert results[0].error == "RuntimeError: boom"

    def test_cancelled_before_start(self, quiet_transport, mock_post):
        cancel = threading.Event()
        cancel.set()
        results = Dashboard(_fo_store("A", "C"), quiet_transport, cancel_event=cancel).run()
        assert all(r.status == "error" for r in results)
        mock_post.assert_not_called()

    def test_empty_store(self, quiet_transport):
        assert Dashboard(MemoryCredentialStore(), quiet_transport).run() == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_parse_filter(self):
        assert parse_service_filter("fo, ELDA") == {AccountType.FINANZONLINE, AccountType.ELDA}
        assert parse_service_filter(None) is None
        assert parse_service_filter(" , ") is None

    def test_parse_filter_unknown(self):
        with pytest.raises(ValueError, match="unknown service 'bank'"):
            parse_service_filter("bank")

    def test_sort_order(self):
        results = [
            ServiceResult("z", "finanzonline", pending_items=0),
            ServiceResult("y", "finanzonline", pending_items=5),
            ServiceResult("x", "elda", error="down"),
            ServiceResult("a", "finanzonline", pending_items=5),
        ]
        assert [r.account for r in sort_results(results)] == ["x", "a", "y", "z"]

    def test_summary_table(self):
        text = summary([
            ServiceResult("B", "finanzonline", "222222222222", status="error", error="Invalid credentials"),
            ServiceResult("A", "finanzonline", "111111111111", status="pending", pending_items=2),
        ])
        assert "ERROR" in text
        assert "└ Invalid credentials" in text
        assert text.rstrip().endswith("TOTAL: 2 services, 2 pending, 1 errors")

    def test_long_name_truncated(self):
        text = summary([ServiceResult("x" * 40, "elda")])
        assert "x" * 26 + "..." in text

    def test_to_dict(self):
        d = ServiceResult("A", "elda", status="error").to_dict()
        assert d["has_error"] is True
