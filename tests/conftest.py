"""
tests/conftest.py
~~~~~~~~~~~~~~~~~
Shared pytest fixtures for the amtsbote test suite.

No test touches the network (``requests.Session.post`` is mocked) or the
real ``~/.fo`` directory (``cfg.home_dir`` points into ``tmp_path``).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from amtsbote.config import Config, cfg
from amtsbote.credentials import Account, AccountType, MemoryCredentialStore
from amtsbote.erechnung import BankAccount, Invoice, Line, Party
from amtsbote.fonws import Session, SoapTransport

SOAP_NS = "http://schemas.xmlsoap.org/soap/envelope/"
FO_BASE = "https://fo.test/fonws/ws"


# ---------------------------------------------------------------------------
# SOAP helpers
# ---------------------------------------------------------------------------

def soap(inner: str) -> bytes:
    """Wrap an XML fragment in a SOAP 1.1 envelope."""
    return (
        f'<soap:Envelope xmlns:soap="{SOAP_NS}"><soap:Body>{inner}</soap:Body></soap:Envelope>'
    ).encode("utf-8")


def http_response(mocker, content: bytes = b"", status_code: int = 200):
    resp = mocker.Mock()
    resp.status_code = status_code
    resp.content = content
    resp.text = content.decode("utf-8", errors="replace")
    return resp


def soap_response(mocker, inner: str):
    return http_response(mocker, soap(inner))


def sent_body(mock_post, call_index: int = -1) -> str:
    """The envelope of one recorded POST as text."""
    call = mock_post.call_args_list[call_index]
    return call.kwargs["data"].decode("utf-8")


# ---------------------------------------------------------------------------
# Config / environment
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep credentials, watchlist and DB out of the real home directory."""
    home = tmp_path / ".fo"
    monkeypatch.setattr(cfg, "home_dir", home)
    return home


@pytest.fixture
def default_config() -> Config:
    return Config(_env_file=None)  # type: ignore[call-arg]


# ---------------------------------------------------------------------------
# HTTP / transport
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_post(mocker):
    return mocker.patch("requests.Session.post")


@pytest.fixture
def transport(mock_post) -> SoapTransport:
    t = SoapTransport(FO_BASE, max_retries=2, retry_backoff=0.01, sleep=lambda _: None)
    yield t
    t.close()


@pytest.fixture
def session() -> Session:
    return Session(token="SESSION-TOKEN", tid="123456789012", benid="WEBUSER", account_name="firma-a")


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

def _make_fo_account(name: str = "firma-a", tid: str = "123456789012") -> Account:
    return Account(name=name, type=AccountType.FINANZONLINE.value, tid=tid, benid="WEBUSER", pin="secret")


@pytest.fixture
def fo_account() -> Account:
    return _make_fo_account()


@pytest.fixture
def elda_account() -> Account:
    return Account(
        name="lohn", type=AccountType.ELDA.value,
        dienstgeber_nr="12345678", elda_benutzer="ELDAUSER", elda_pin="pin",
    )


@pytest.fixture
def fb_account() -> Account:
    return Account(name="register", type=AccountType.FIRMENBUCH.value, api_key="KEY-1234567890")


@pytest.fixture
def memory_store(fo_account, elda_account, fb_account) -> MemoryCredentialStore:
    return MemoryCredentialStore([fo_account, elda_account, fb_account])


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_invoice() -> Invoice:
    return Invoice(
        id="RE-2025-001",
        issue_date=date(2025, 3, 15),
        due_date=date(2025, 4, 14),
        buyer_reference="04011000-12345-34",
        seller=Party(
            name="Muster GmbH", street="Hauptstraße 1", city="Wien",
            postal_code="1010", country="AT", vat_number="ATU12345678",
        ),
        buyer=Party(
            name="Kunde AG", street="Ring 5", city="Graz",
            postal_code="8010", country="AT", vat_number="ATU87654321",
        ),
        lines=[
            Line(id="1", description="Beratung", quantity=Decimal("10"), unit_code="HUR",
                 unit_price=12000, tax_category="S", tax_percent=Decimal("20")),
            Line(id="2", description="Fachbuch", quantity=Decimal("2"), unit_code="C62",
                 unit_price=4550, tax_category="AA", tax_percent=Decimal("10")),
        ],
        payment_means="58",
        bank_account=BankAccount(iban="AT611904300234573201", bic="BKAUATWW", name="Muster GmbH"),
    ).calc_totals()


@pytest.fixture
def sample_invoice_dict(sample_invoice) -> dict:
    return sample_invoice.to_dict()
