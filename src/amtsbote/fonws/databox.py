"""
amtsbote.fonws.databox
~~~~~~~~~~~~~~~~~~~~~~
The per-participant FinanzOnline mailbox ("DataBox").

Classification codes
--------------------
    B  Bescheid            assessment            informational
    E  Ergänzungsersuchen  supplementary request action required
    M  Mitteilung          notice                informational
    V  Vorhalt             preliminary ruling    action required
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from ..exceptions import CodecError, ProtocolError
from .session import Session
from .transport import (
    DATABOX_NS,
    DATABOX_SERVICE,
    SoapTransport,
    check_response,
    request_element,
    result_code,
)
from .. import xmlutil

logger = logging.getLogger(__name__)

TYPE_NAMES = {
    "B": "Bescheid",
    "E": "Ergänzungsersuchen",
    "M": "Mitteilung",
    "V": "Vorhalt",
}

ACTION_REQUIRED_CODES = frozenset({"E", "V"})


@dataclass
class DataboxEntry:
    """One document listed in the mailbox."""

    applkey:        str
    description:    str = ""
    delivered_at:   str = ""
    classification: str = ""
    version:        str = ""

    @property
    def action_required(self) -> bool:
        return self.classification in ACTION_REQUIRED_CODES

    @property
    def type_name(self) -> str:
        return TYPE_NAMES.get(self.classification, self.classification)

    def to_dict(self) -> dict:
        return {
            "applkey":         self.applkey,
            "description":     self.description,
            "delivered_at":    self.delivered_at,
            "classification":  self.classification,
            "version":         self.version,
            "type_name":       self.type_name,
            "action_required": self.action_required,
        }


def _date_arg(value: date | str | None) -> str | None:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, date) else str(value)


def _decode_content(content: str) -> bytes:
    try:
        return base64.b64decode("".join(content.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError("mailbox document is not valid base64", cause=exc) from exc


class DataboxService:
    """List and download mailbox documents for one authenticated session."""

    def __init__(self, transport: SoapTransport) -> None:
        self.transport = transport

    @property
    def url(self) -> str:
        return self.transport.endpoint(DATABOX_SERVICE)

    def _call(self, session: Session, req, cancel: threading.Event | None):
        resp = self.transport.call(self.url, req, cancel=cancel)
        try:
            check_response(*result_code(resp))
        except ProtocolError as exc:
            session.guard(exc)
            raise
        return resp

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list(
        self,
        session:   Session,
        from_date: date | str | None = None,
        to_date:   date | str | None = None,
        *,
        cancel:    threading.Event | None = None,
    ) -> list[DataboxEntry]:
        """All entries delivered within the optional date window."""
        session.require()
        req = request_element(
            "GetDataboxInfo", DATABOX_NS,
            id=session.token, tid=session.tid, benid=session.benid,
            ts_zust_von=_date_arg(from_date), ts_zust_bis=_date_arg(to_date),
        )
        resp = self._call(session, req, cancel)
        return [
            DataboxEntry(
                applkey=xmlutil.text(el, "applkey"),
                description=xmlutil.text(el, "filebez"),
                delivered_at=xmlutil.text(el, "ts_zust"),
                classification=xmlutil.text(el, "erlession"),
                version=xmlutil.text(el, "veression"),
            )
            for el in xmlutil.children(xmlutil.child(resp, "result"), "databox")
        ]

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download_to_bytes(
        self,
        session: Session,
        applkey: str,
        *,
        cancel:  threading.Event | None = None,
    ) -> tuple[bytes, str]:
        """Return ``(content, filename)``; the filename falls back to ``<applkey>.pdf``."""
        session.require()
        req = request_element(
            "GetDatabox", DATABOX_NS,
            id=session.token, tid=session.tid, benid=session.benid, applkey=applkey,
        )
        resp = self._call(session, req, cancel)
        content  = _decode_content(xmlutil.text(resp, "result/content"))
        filename = xmlutil.text(resp, "result/filename") or f"{applkey}.pdf"
        return content, filename

    def download(
        self,
        session:    Session,
        applkey:    str,
        output_dir: str | Path,
        *,
        cancel:     threading.Event | None = None,
    ) -> Path:
        """Save a document into *output_dir* and return its path."""
        content, filename = self.download_to_bytes(session, applkey, cancel=cancel)
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        target = out_dir / Path(filename).name

        # write-then-rename so readers never see a partial file
        fd, tmp = tempfile.mkstemp(dir=out_dir, prefix=".dl-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            os.replace(tmp, target)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Saved %s (%d bytes)", target, len(content))
        return target


__all__ = ["ACTION_REQUIRED_CODES", "TYPE_NAMES", "DataboxEntry", "DataboxService"]
