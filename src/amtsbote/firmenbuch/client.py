"""
amtsbote.firmenbuch.client
~~~~~~~~~~~~~~~~~~~~~~~~~~
SOAP client for the companies-register query service.

Authentication is a static API key carried in the SOAP header::

    <auth:Authentication xmlns:auth="https://www.justiz.gv.at/auth">
      <auth:APIKey>...</auth:APIKey>
    </auth:Authentication>

The operation is selected via ``SOAPAction`` (``Search``, ``Extract``).
Transport, retries and cancellation are shared with the FinanzOnline
client.
"""

from __future__ import annotations

import logging
import threading
import xml.etree.ElementTree as ET
from datetime import date

import requests

from ..config import cfg
from ..exceptions import CodecError, FirmenbuchError
from ..fonws.transport import SoapTransport
from ..identifiers import normalize_fn, validate_fn
from .models import (
    FBAddress,
    FBExtract,
    FBPerson,
    FBSearchResponse,
    FBSearchResult,
    FBShareholder,
)
from .. import xmlutil

logger = logging.getLogger(__name__)

FB_NS   = "https://www.justiz.gv.at/firmenbuch"
AUTH_NS = "https://www.justiz.gv.at/auth"

DEFAULT_MAX_HITS = 20


def _date(el: ET.Element | None, path: str) -> date | None:
    raw = xmlutil.text(el, path)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise CodecError(f"{path}: invalid date {raw!r}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_search(payload: ET.Element) -> FBSearchResponse:
    hits = [
        FBSearchResult(
            fn=xmlutil.text(t, "FN"),
            firma=xmlutil.text(t, "Firma"),
            rechtsform=xmlutil.text(t, "Rechtsform"),
            sitz=xmlutil.text(t, "Sitz"),
            status=xmlutil.text(t, "Status"),
        )
        for t in xmlutil.children(payload, "Treffer")
    ]
    return FBSearchResponse(results=hits, total_count=xmlutil.int_text(payload, "Anzahl", default=len(hits)))


def _person(el: ET.Element) -> FBPerson:
    return FBPerson(
        vorname=xmlutil.text(el, "Vorname"),
        nachname=xmlutil.text(el, "Nachname"),
        funktion=xmlutil.text(el, "Funktion"),
        vertretungsart=xmlutil.text(el, "VertretungsArt"),
        geburtsdatum=_date(el, "Geburtsdatum"),
        seit=_date(el, "Seit"),
        bis=_date(el, "Bis"),
    )


def _shareholder(el: ET.Element) -> FBShareholder:
    return FBShareholder(
        name=xmlutil.text(el, "Name"),
        fn=xmlutil.text(el, "FN"),
        anteil=xmlutil.int_text(el, "Anteil"),
        stammeinlage=xmlutil.int_text(el, "Stammeinlage"),
        seit=_date(el, "Seit"),
    )


def decode_extract(payload: ET.Element) -> FBExtract:
    addr = xmlutil.child(payload, "Adresse")
    return FBExtract(
        fn=xmlutil.text(payload, "FN"),
        firma=xmlutil.text(payload, "Firma"),
        rechtsform=xmlutil.text(payload, "Rechtsform"),
        sitz=xmlutil.text(payload, "Sitz"),
        adresse=FBAddress(
            strasse=xmlutil.text(addr, "Strasse"),
            plz=xmlutil.text(addr, "PLZ"),
            ort=xmlutil.text(addr, "Ort"),
            land=xmlutil.text(addr, "Land"),
        ),
        stammkapital=xmlutil.int_text(payload, "Stammkapital"),
        waehrung=xmlutil.text(payload, "Waehrung") or "EUR",
        status=xmlutil.text(payload, "Status"),
        gruendungsdatum=_date(payload, "Gruendungsdatum"),
        letzte_aenderung=_date(payload, "LetzteAenderung"),
        geschaeftsfuehrer=[_person(p) for p in xmlutil.children(xmlutil.child(payload, "Geschaeftsfuehrer"), "Person")],
        gesellschafter=[
            _shareholder(g)
            for g in xmlutil.children(xmlutil.child(payload, "Gesellschafter"), "Gesellschafter")
        ],
        gegenstand=xmlutil.text(payload, "Gegenstand"),
        uid=xmlutil.text(payload, "UID"),
    )


def _expect(payload: ET.Element, name: str) -> ET.Element:
    """Raise on an ``FBAntwort`` error reply or an unexpected element."""
    tag = xmlutil.local(payload.tag)
    if tag == "FBAntwort":
        rc = xmlutil.int_text(payload, "rc")
        msg = xmlutil.text(payload, "msg")
        if rc != 0:
            raise FirmenbuchError(f"Firmenbuch error (code {rc}): {msg}".rstrip(": "), code=rc, server_message=msg)
    if tag != name:
        raise CodecError(f"expected {name} in Firmenbuch response, got {tag}")
    return payload


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class FirmenbuchClient:
    def __init__(
        self,
        api_key:     str,
        *,
        test_mode:   bool = False,
        endpoint:    str | None = None,
        timeout:     float | None = None,
        max_retries: int | None = None,
        http:        requests.Session | None = None,
        transport:   SoapTransport | None = None,
    ) -> None:
        if endpoint is None:
            endpoint = cfg.firmenbuch_test_endpoint if test_mode else cfg.firmenbuch_endpoint
        self.api_key = api_key
        self.endpoint = endpoint
        self.transport = transport or SoapTransport(
            base_url=endpoint, timeout=timeout, max_retries=max_retries, http=http,
        )

    def __enter__(self) -> "FirmenbuchClient":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    def _auth_header(self) -> ET.Element:
        auth = ET.Element("auth:Authentication", {"xmlns:auth": AUTH_NS})
        xmlutil.sub(auth, "auth:APIKey", self.api_key)
        return auth

    def _call(self, action: str, body: ET.Element, cancel: threading.Event | None) -> ET.Element:
        return self.transport.call(
            self.endpoint, body,
            header=self._auth_header(),
            headers={"SOAPAction": action},
            cancel=cancel,
        )

    def search(
        self,
        name:     str = "",
        *,
        fn:       str = "",
        ort:      str = "",
        max_hits: int = DEFAULT_MAX_HITS,
        cancel:   threading.Event | None = None,
    ) -> FBSearchResponse:
        """Search by company name, register number or seat; empty criteria are omitted."""
        req = ET.Element("FBSuche", {"xmlns": FB_NS})
        xmlutil.sub_if(req, "Name", name)
        xmlutil.sub_if(req, "FN", normalize_fn(fn) if fn else "")
        xmlutil.sub_if(req, "Ort", ort)
        if max_hits > 0:
            xmlutil.sub(req, "MaxHits", max_hits)
        resp = decode_search(_expect(self._call("Search", req, cancel), "FBSucheAntwort"))
        logger.info("Firmenbuch search %r: %d hit(s)", name or fn or ort, len(resp.results))
        return resp

    def extract(self, fn: str, *, cancel: threading.Event | None = None) -> FBExtract:
        """Fetch the full extract; the FN is checked locally before any request."""
        fn = normalize_fn(fn)
        validate_fn(fn)
        req = ET.Element("FBAuszugAnfrage", {"xmlns": FB_NS})
        xmlutil.sub(req, "FN", fn)
        extract = decode_extract(_expect(self._call("Extract", req, cancel), "FBAuszug"))
        logger.debug("Firmenbuch extract %s: %s (%s)", fn, extract.firma, extract.status)
        return extract


__all__ = [
    "AUTH_NS",
    "FB_NS",
    "FirmenbuchClient",
    "decode_extract",
    "decode_search",
]
