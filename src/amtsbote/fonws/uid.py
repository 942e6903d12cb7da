"""
amtsbote.fonws.uid
~~~~~~~~~~~~~~~~~~
UID (VAT identifier) queries against FinanzOnline.

Every query is checked locally against the per-country pattern table
first; a malformed UID never reaches the portal. Level 1 answers only
"valid / not valid", level 2 adds the registered name and address.

Usage::

    svc = UIDService(transport)
    result = svc.query(session, "DE123456789", level=2)
    print(result.valid, result.company_name)
"""

from __future__ import annotations

import csv
import io
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from ..exceptions import ProtocolError, protocol_error_for
from ..identifiers import normalize_uid, validate_uid_format
from .session import Session
from .transport import UID_NS, UID_SERVICE, SoapTransport, request_element, result_code
from .. import xmlutil

logger = logging.getLogger(__name__)

# positive result codes that describe the UID, not the session
_FRIENDLY_MESSAGES = {
    1513: "daily query limit exceeded for this UID",
    1514: "UID number not found in registry",
}


@dataclass
class UIDAddress:
    street:    str = ""
    post_code: str = ""
    city:      str = ""
    country:   str = ""

    def formatted(self) -> str:
        if not self.street:
            return ""
        return f"{self.street}, {self.post_code} {self.city}"


@dataclass
class UIDValidationResult:
    """Outcome of one UID lookup (local or remote)."""

    uid:           str
    valid:         bool
    company_name:  str = ""
    address:       UIDAddress = field(default_factory=UIDAddress)
    country_code:  str = ""
    query_time:    datetime = field(default_factory=datetime.now)
    source:        str = "finanzonline"
    error_code:    int = 0
    error_message: str = ""

    def to_dict(self) -> dict:
        return {
            "uid":           self.uid,
            "valid":         self.valid,
            "company_name":  self.company_name,
            "address": {
                "street":    self.address.street,
                "post_code": self.address.post_code,
                "city":      self.address.city,
                "country":   self.address.country,
            },
            "country_code":  self.country_code,
            "query_time":    self.query_time.isoformat(),
            "source":        self.source,
            "error_code":    self.error_code,
            "error_message": self.error_message,
        }


class UIDService:
    def __init__(self, transport: SoapTransport) -> None:
        self.transport = transport

    @property
    def url(self) -> str:
        return self.transport.endpoint(UID_SERVICE)

    def query(
        self,
        session: Session,
        uid:     str,
        level:   int = 1,
        *,
        cancel:  threading.Event | None = None,
    ) -> UIDValidationResult:
        """
        Look up one UID.

        A locally malformed UID yields an invalid result without a network
        call. Result codes 1513/1514 and other positive codes end up in the
        result. Negative (session-level) codes raise; session-expired
        invalidates *session* first.
        """
        session.require()
        uid = normalize_uid(uid)
        fmt = validate_uid_format(uid)
        if not fmt.valid:
            return UIDValidationResult(
                uid=uid, valid=False, country_code=fmt.country_code,
                source="local", error_message=fmt.error,
            )

        req = request_element(
            "uidAbfrage", UID_NS,
            tid=session.tid, benid=session.benid, id=session.token,
            uid_tn=uid, stufe=level,
        )
        resp = self.transport.call(self.url, req, cancel=cancel)
        rc, msg = result_code(resp)
        if rc < 0:
            exc = protocol_error_for(rc, msg)
            session.guard(exc)
            raise exc
        return _to_result(resp, uid, rc, msg)

    def query_batch(
        self,
        session: Session,
        uids:    Iterable[str],
        level:   int = 1,
        *,
        cancel:  threading.Event | None = None,
    ) -> list[UIDValidationResult]:
        """
        Look up many UIDs in order.

        A protocol error for one UID becomes that UID's result and the batch
        continues, unless the session itself is gone.
        """
        results: list[UIDValidationResult] = []
        for uid in uids:
            try:
                results.append(self.query(session, uid, level, cancel=cancel))
            except ProtocolError as exc:
                if not session.valid:
                    raise
                logger.warning("UID query for %s failed: %s", uid, exc)
                results.append(UIDValidationResult(
                    uid=normalize_uid(uid), valid=False,
                    error_code=exc.code, error_message=str(exc),
                ))
        return results


def _to_result(resp, uid: str, rc: int, msg: str) -> UIDValidationResult:
    uid_tn  = xmlutil.text(resp, "uid_tn") or uid
    country = uid_tn[:2]
    gueltig = xmlutil.text(resp, "gueltig").lower()

    if rc == 0 and gueltig in ("true", "1"):
        return UIDValidationResult(
            uid=uid_tn,
            valid=True,
            company_name=xmlutil.text(resp, "name"),
            address=UIDAddress(
                street=xmlutil.text(resp, "adr_strasse"),
                post_code=xmlutil.text(resp, "adr_plz"),
                city=xmlutil.text(resp, "adr_ort"),
                country=country,
            ),
            country_code=country,
        )
    return UIDValidationResult(
        uid=uid_tn,
        valid=False,
        country_code=country,
        error_code=rc,
        error_message=_FRIENDLY_MESSAGES.get(rc, msg),
    )


# ---------------------------------------------------------------------------
# CSV / list helpers
# ---------------------------------------------------------------------------

def parse_uid_csv(data: str | bytes) -> list[str]:
    """UIDs from the ``uid`` column of a CSV with a header row; blanks skipped."""
    if isinstance(data, bytes):
        data = data.decode("utf-8-sig")
    reader = csv.reader(io.StringIO(data))
    header = next(reader, None)
    if header is None:
        raise ValueError("failed to read CSV header: empty input")

    cols = [c.strip().lower() for c in header]
    if "uid" not in cols:
        raise ValueError("CSV must contain a 'uid' column")
    idx = cols.index("uid")

    uids = []
    for row in reader:
        if len(row) > idx and row[idx].strip():
            uids.append(row[idx].strip().upper())
    return uids


def parse_uid_list(text: str) -> list[str]:
    """Split on commas, semicolons and newlines."""
    return [u.strip().upper() for u in re.split(r"[,;\n]", text) if u.strip()]


def write_uid_results_csv(results: Iterable[UIDValidationResult]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["uid", "valid", "company_name", "street", "post_code", "city", "error"])
    for r in results:
        writer.writerow([
            r.uid,
            "true" if r.valid else "false",
            r.company_name,
            r.address.street,
            r.address.post_code,
            r.address.city,
            r.error_message,
        ])
    return buf.getvalue()


__all__ = [
    "UIDAddress",
    "UIDService",
    "UIDValidationResult",
    "parse_uid_csv",
    "parse_uid_list",
    "write_uid_results_csv",
]
