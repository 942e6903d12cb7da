"""
amtsbote.web.api
~~~~~~~~~~~~~~~~
FastAPI backend exposing the local amtsbote operations as JSON over HTTP.

Request bodies use the same JSON shapes as the CLI input files. Errors
are returned as the shared envelope
``{"error": true, "error_type": ..., "message": ...}``.

Endpoints
---------
GET  /health                 — Liveness
GET  /config                 — Runtime configuration snapshot (no secrets)
POST /uva/validate           — UVA JSON → validation result
POST /uva/xml                — UVA JSON → U30 XML
POST /zm/validate            — ZM JSON → validation result
POST /zm/xml                 — ZM JSON → ZM XML
GET  /uid/{uid}/format       — Local VAT-id format check
POST /erechnung/validate     — Invoice JSON → validation result
POST /erechnung/calc         — Invoice JSON → invoice with totals
POST /erechnung/xrechnung    — Invoice JSON → UBL XML
POST /erechnung/zugferd      — Invoice JSON → CII XML
POST /sepa/iban/validate     — {"iban": ...} → IBAN details
POST /sepa/pain001           — Credit-transfer JSON → pain.001 XML
POST /sepa/camt053           — camt.053 XML body → statement JSON
POST /elda/validate          — Anmeldung / Abmeldung JSON → validation result
GET  /fb/{fn}/validate       — Local Firmenbuchnummer check
POST /dashboard              — Account list in the body → status per account
"""

from __future__ import annotations

import logging
from datetime import date
from importlib.metadata import PackageNotFoundError, version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ..config import cfg
from ..credentials import Account, MemoryCredentialStore
from ..dashboard import Dashboard
from ..elda import Abmeldung, Anmeldung
from ..erechnung import Invoice, encode_cii, encode_ubl, validate_invoice
from ..exceptions import AmtsboteError, DocumentValidationError, error_envelope
from ..fonws import SoapTransport
from ..identifiers import IdentifierError, normalize_fn, validate_fn, validate_uid_format
from ..sepa import (
    CreditTransaction,
    CreditTransfer,
    generate_pain001,
    parse_camt053,
    validate_iban_details,
)
from ..sepa.models import Account as SEPAAccount, PartyInfo
from ..tax import UVA, ZM

logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = "application/xml"

# error kind → HTTP status; anything else is a failure upstream
ERROR_STATUS = {
    "validation":          422,
    "codec":               400,
    "credential-store":    400,
    "no-session":          401,
    "invalid-credentials": 401,
    "not-found":           404,
    "maintenance":         503,
}


def _package_version() -> str:
    try:
        return version("amtsbote")
    except PackageNotFoundError:
        return "unknown"


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="amtsbote API",
    description=(
        "JSON API for Austrian back-office filings: UVA and ZM documents, "
        "ELDA declarations, e-invoices, SEPA payments and the companies register."
    ),
    version=_package_version(),
    license_info={"name": "MIT"},
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AmtsboteError)
async def amtsbote_error_handler(request: Request, exc: AmtsboteError) -> JSONResponse:
    code = ERROR_STATUS.get(exc.kind, 502)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content=error_envelope(exc))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _xml(data: bytes) -> Response:
    return Response(content=data, media_type=XML_MEDIA_TYPE)


def _date(value) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise DocumentValidationError(f"invalid date {value!r}, expected YYYY-MM-DD") from None


# ---------------------------------------------------------------------------
# Meta routes
# ---------------------------------------------------------------------------

@app.get("/health", tags=["meta"])
def health():
    return {"status": "ok", "version": _package_version()}


@app.get("/config", tags=["meta"])
def get_config():
    """Return the active configuration."""
    tc = cfg.get_transport_config()
    return {
        "fonws_base_url":    tc.base_url,
        "request_timeout":   tc.timeout,
        "max_retries":       tc.max_retries,
        "retry_backoff":     tc.retry_backoff,
        "elda_test_mode":    cfg.elda_test_mode,
        "elda_endpoint":     cfg.active_elda_endpoint,
        "dashboard_workers": cfg.dashboard_workers,
        "home_dir":          str(cfg.home_dir),
    }


# ---------------------------------------------------------------------------
# Tax routes
# ---------------------------------------------------------------------------

@app.post("/uva/validate", tags=["tax"])
def uva_validate(body: dict):
    uva = UVA.from_dict(body)
    return {"period": uva.period_string, "kz095": uva.kz095, **uva.validate().to_dict()}


@app.post("/uva/xml", tags=["tax"])
def uva_xml(body: dict):
    """U30 XML for a valid return; an invalid one yields 422 with the issues."""
    uva = UVA.from_dict(body)
    uva.validate().raise_if_invalid("UVA")
    return _xml(uva.to_xml())


@app.post("/zm/validate", tags=["tax"])
def zm_validate(body: dict):
    zm = ZM.from_dict(body)
    return {"period": zm.period_string, "total_amount": zm.total_amount, **zm.validate().to_dict()}


@app.post("/zm/xml", tags=["tax"])
def zm_xml(body: dict):
    zm = ZM.from_dict(body)
    zm.validate().raise_if_invalid("ZM")
    return _xml(zm.to_xml())


@app.get("/uid/{uid}/format", tags=["tax"])
def uid_format(uid: str):
    return validate_uid_format(uid).to_dict()


# ---------------------------------------------------------------------------
# E-invoice routes
# ---------------------------------------------------------------------------

@app.post("/erechnung/validate", tags=["erechnung"])
def erechnung_validate(body: dict):
    inv = Invoice.from_dict(body).calc_totals()
    return validate_invoice(inv).to_dict()


@app.post("/erechnung/calc", tags=["erechnung"])
def erechnung_calc(body: dict):
    return Invoice.from_dict(body).calc_totals().to_dict()


def _checked_invoice(body: dict) -> Invoice:
    inv = Invoice.from_dict(body).calc_totals()
    validate_invoice(inv).raise_if_invalid("invoice")
    return inv


@app.post("/erechnung/xrechnung", tags=["erechnung"])
def erechnung_xrechnung(body: dict):
    return _xml(encode_ubl(_checked_invoice(body)))


@app.post("/erechnung/zugferd", tags=["erechnung"])
def erechnung_zugferd(body: dict):
    return _xml(encode_cii(_checked_invoice(body)))


# ---------------------------------------------------------------------------
# SEPA routes
# ---------------------------------------------------------------------------

@app.post("/sepa/iban/validate", tags=["sepa"])
def sepa_iban_validate(body: dict):
    return validate_iban_details(str(body.get("iban", ""))).to_dict()


@app.post("/sepa/pain001", tags=["sepa"])
def sepa_pain001(body: dict):
    """
    Body::

        {"message_id": "BATCH-1", "execution_date": "2025-03-01",
         "debtor": {"name": "Muster GmbH"},
         "debtor_account": {"iban": "AT61...", "bic": "BKAUATWW"},
         "transactions": [{"amount": 12345, "creditor": {"name": ...},
                           "creditor_account": {"iban": ...}, ...}]}
    """
    debtor = PartyInfo.from_dict(body.get("debtor"))
    account = SEPAAccount.from_dict(body.get("debtor_account"))
    ct = CreditTransfer.build(
        body.get("message_id", ""),
        debtor.name,
        account.iban,
        [CreditTransaction.from_dict(t) for t in body.get("transactions") or []],
        debtor_bic=account.bic,
        execution_date=_date(body.get("execution_date")),
    )
    return _xml(generate_pain001(ct))


@app.post("/sepa/camt053", tags=["sepa"])
async def sepa_camt053(request: Request):
    """camt.053 XML in the request body → statement with entries and totals."""
    return parse_camt053(await request.body()).to_dict()


# ---------------------------------------------------------------------------
# ELDA and Firmenbuch routes
# ---------------------------------------------------------------------------

@app.post("/elda/validate", tags=["elda"])
def elda_validate(body: dict):
    """Abmeldung when the body carries ``grund``, otherwise Anmeldung."""
    if body.get("kind") == "abmeldung" or "grund" in body:
        doc = Abmeldung.from_dict(body)
    elif "first_name" in body:
        doc = Anmeldung.from_employee(body)
    else:
        doc = Anmeldung.from_dict(body)
    return {"kind": type(doc).__name__.lower(), **doc.validate().to_dict()}


@app.get("/fb/{fn}/validate", tags=["firmenbuch"])
def fb_validate(fn: str):
    normalized = normalize_fn(fn)
    try:
        validate_fn(normalized)
    except IdentifierError as exc:
        return {"fn": normalized, "valid": False, "error": exc.message}
    return {"fn": normalized, "valid": True, "error": ""}


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

@app.post("/dashboard", tags=["dashboard"])
def dashboard(body: dict):
    """
    Body::

        {"accounts": [{"name": "firma-a", "type": "finanzonline",
                       "tid": "...", "benid": "...", "pin": "..."}],
         "services": "fo,elda", "from_date": "2025-01-01", "to_date": null}

    Credentials live only for the duration of the request.
    """
    store = MemoryCredentialStore(Account.from_dict(a) for a in body.get("accounts") or [])
    with SoapTransport() as transport:
        results = Dashboard(
            store, transport,
            services=body.get("services"),
            from_date=body.get("from_date"),
            to_date=body.get("to_date"),
        ).run()
    return {
        "results": [r.to_dict() for r in results],
        "total":   len(results),
        "errors":  sum(1 for r in results if r.has_error),
        "pending": sum(r.pending_items for r in results),
    }
