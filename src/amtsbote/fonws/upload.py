"""
amtsbote.fonws.upload
~~~~~~~~~~~~~~~~~~~~~
The single FinanzOnline submission channel.

A submission is a document kind plus a serialized XML payload. The payload
is base64-encoded, sent in one ``upload`` call, and answered with
``(rc, msg, belegnummer)``. On success the portal reference is stored on
the document and its status moves to *submitted*.
"""

from __future__ import annotations

import base64
import logging
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from ..exceptions import ProtocolError
from ..models import DocumentStatus, advance
from .session import Session
from .transport import (
    FILE_UPLOAD_NS,
    FILE_UPLOAD_SERVICE,
    SoapTransport,
    check_response,
    result_code,
)
from .. import xmlutil

if TYPE_CHECKING:
    from ..tax.uva import UVA
    from ..tax.zm import ZM

logger = logging.getLogger(__name__)

# document kind → portal "art" code
ART_CODES = {
    "advance-VAT":              "U30",
    "recapitulative-statement": "ZM",
}


@dataclass
class UploadResult:
    """What the portal answered to one submission."""

    kind:         str
    reference:    str
    message:      str = ""
    submitted_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "kind":         self.kind,
            "reference":    self.reference,
            "message":      self.message,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }


class FileUploadService:
    def __init__(self, transport: SoapTransport) -> None:
        self.transport = transport

    @property
    def url(self) -> str:
        return self.transport.endpoint(FILE_UPLOAD_SERVICE)

    def submit(
        self,
        session: Session,
        kind:    str,
        payload: bytes,
        *,
        cancel:  threading.Event | None = None,
    ) -> UploadResult:
        """
        Upload *payload* as document *kind*.

        Raises ``ValueError`` for an unknown kind and the typed
        ``ProtocolError`` (server message preserved) for a non-zero code.
        """
        session.require()
        try:
            art = ART_CODES[kind]
        except KeyError:
            raise ValueError(f"unknown document kind {kind!r}; expected one of {sorted(ART_CODES)}") from None

        req = _upload_element(session, art, payload)
        resp = self.transport.call(self.url, req, cancel=cancel)
        try:
            check_response(*result_code(resp))
        except ProtocolError as exc:
            session.guard(exc)
            raise

        reference = xmlutil.text(resp, "belegnummer")
        logger.info("Uploaded %s for %s, reference %s", art, session.tid, reference)
        return UploadResult(
            kind=kind,
            reference=reference,
            message=xmlutil.text(resp, "msg"),
            submitted_at=datetime.now(),
        )

    # ------------------------------------------------------------------
    # Typed shortcuts
    # ------------------------------------------------------------------

    def submit_uva(self, session: Session, uva: "UVA", **kw) -> UploadResult:
        uva.validate().raise_if_invalid("UVA")
        result = self.submit(session, "advance-VAT", uva.to_xml(), **kw)
        _mark_submitted(uva, result)
        return result

    def submit_zm(self, session: Session, zm: "ZM", **kw) -> UploadResult:
        zm.validate().raise_if_invalid("ZM")
        result = self.submit(session, "recapitulative-statement", zm.to_xml(), **kw)
        _mark_submitted(zm, result)
        return result


def _upload_element(session: Session, art: str, payload: bytes) -> ET.Element:
    el = ET.Element("upload", {"xmlns": FILE_UPLOAD_NS})
    xmlutil.sub(el, "tid", session.tid)
    xmlutil.sub(el, "benid", session.benid)
    xmlutil.sub(el, "id", session.token)
    xmlutil.sub(el, "art", art)
    wrapper = xmlutil.sub(el, "uebession")
    xmlutil.sub(wrapper, "data", base64.b64encode(payload).decode("ascii"))
    return el


def _mark_submitted(doc, result: UploadResult) -> None:
    doc.status       = advance(doc.status, DocumentStatus.SUBMITTED)
    doc.reference    = result.reference
    doc.submitted_at = result.submitted_at


__all__ = ["ART_CODES", "FileUploadService", "UploadResult"]
