"""
amtsbote.elda.client
~~~~~~~~~~~~~~~~~~~~
SOAP client for the ELDA webservice.

ELDA shares the FinanzOnline transport (envelope, retry predicate,
cancellation) but talks to a single endpoint and selects the operation
through the ``SOAPAction`` header. Requests are bounded by a longer
per-attempt timeout (``cfg.elda_timeout``).

Usage::

    client = ELDAClient(dienstgeber_nr="12345678", test_mode=True)
    print(client.test_connection().latency_ms)
    resp = client.submit_anmeldung(anmeldung)
    print(resp.reference)
"""

from __future__ import annotations

import logging
import threading
import time
import xml.etree.ElementTree as ET

import requests

from ..config import cfg
from ..exceptions import AmtsboteError, CancelledError, ELDAError
from ..fonws.transport import SoapTransport
from ..models import DocumentStatus, advance
from .codec import ELDA_NS, abmeldung_element, anmeldung_element, decode_response
from .models import Abmeldung, Anmeldung, ConnectionTestResult, ELDAResponse
from .. import xmlutil

logger = logging.getLogger(__name__)


class ELDAClient:
    def __init__(
        self,
        dienstgeber_nr: str = "",
        *,
        test_mode:      bool | None = None,
        endpoint:       str | None = None,
        timeout:        float | None = None,
        max_retries:    int | None = None,
        http:           requests.Session | None = None,
        transport:      SoapTransport | None = None,
    ) -> None:
        if test_mode is None:
            test_mode = cfg.elda_test_mode
        if endpoint is None:
            endpoint = cfg.elda_test_endpoint if test_mode else cfg.elda_endpoint
        self.dienstgeber_nr = dienstgeber_nr
        self.endpoint = endpoint.rstrip("/") + "/"
        self.transport = transport or SoapTransport(
            base_url=self.endpoint,
            timeout=cfg.elda_timeout if timeout is None else timeout,
            max_retries=max_retries,
            http=http,
        )

    def __enter__(self) -> "ELDAClient":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _call(self, action: str, body: ET.Element, cancel: threading.Event | None) -> ET.Element:
        return self.transport.call(
            self.endpoint, body, headers={"SOAPAction": action}, cancel=cancel,
        )

    def _checked(self, action: str, body: ET.Element, cancel: threading.Event | None) -> ELDAResponse:
        resp = decode_response(self._call(action, body, cancel))
        if not resp.ok:
            text = f"ELDA error (code {resp.rc})"
            if resp.msg:
                text = f"{text}: {resp.msg}"
            raise ELDAError(text, code=resp.rc, server_message=resp.msg)
        return resp

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit_anmeldung(
        self,
        anmeldung:      Anmeldung,
        *,
        dienstgeber_nr: str = "",
        cancel:         threading.Event | None = None,
    ) -> ELDAResponse:
        """Validate, send, and mark *anmeldung* submitted with its reference."""
        anmeldung.validate().raise_if_invalid("Anmeldung")
        nr = dienstgeber_nr or anmeldung.dienstgeber_nr or self.dienstgeber_nr
        resp = self._checked("SubmitAnmeldung", anmeldung_element(anmeldung, nr), cancel)
        anmeldung.status    = advance(anmeldung.status, DocumentStatus.SUBMITTED)
        anmeldung.reference = resp.reference
        logger.info("ELDA Anmeldung for %s accepted, reference %s", anmeldung.sv_nummer[:4], resp.reference)
        return resp

    def submit_abmeldung(
        self,
        abmeldung:      Abmeldung,
        *,
        dienstgeber_nr: str = "",
        cancel:         threading.Event | None = None,
    ) -> ELDAResponse:
        abmeldung.validate().raise_if_invalid("Abmeldung")
        nr = dienstgeber_nr or abmeldung.dienstgeber_nr or self.dienstgeber_nr
        resp = self._checked("SubmitAbmeldung", abmeldung_element(abmeldung, nr), cancel)
        abmeldung.status    = advance(abmeldung.status, DocumentStatus.SUBMITTED)
        abmeldung.reference = resp.reference
        logger.info("ELDA Abmeldung for %s accepted, reference %s", abmeldung.sv_nummer[:4], resp.reference)
        return resp

    def query_status(
        self,
        reference:      str,
        *,
        dienstgeber_nr: str = "",
        cancel:         threading.Event | None = None,
    ) -> ELDAResponse:
        req = ET.Element("StatusAbfrage", {"xmlns": ELDA_NS})
        xmlutil.sub(req, "DienstgeberNr", dienstgeber_nr or self.dienstgeber_nr)
        xmlutil.sub(req, "Referenz", reference)
        return self._checked("StatusAbfrage", req, cancel)

    def test_connection(self, *, cancel: threading.Event | None = None) -> ConnectionTestResult:
        """``Ping`` the endpoint; failures are reported in the result, not raised."""
        start = time.monotonic()
        try:
            resp = self._call("Ping", ET.Element("Ping", {"xmlns": ELDA_NS}), cancel)
        except CancelledError:
            raise
        except AmtsboteError as exc:
            latency = int((time.monotonic() - start) * 1000)
            logger.warning("ELDA ping to %s failed: %s", self.endpoint, exc)
            return ConnectionTestResult(connected=False, latency_ms=latency, error=str(exc))
        latency = int((time.monotonic() - start) * 1000)
        return ConnectionTestResult(
            connected=True,
            latency_ms=latency,
            server_time=xmlutil.text(resp, "ServerTime"),
        )


__all__ = ["ELDAClient"]
