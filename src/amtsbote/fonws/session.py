"""
amtsbote.fonws.session
~~~~~~~~~~~~~~~~~~~~~~
Login/logout lifecycle for FinanzOnline.

A ``Session`` is a small state machine::

    authenticated ──invalidate()──▶ invalidated

It is created authenticated by ``SessionService.login`` and never becomes
valid again once cleared. Every authenticated service checks
``session.require()`` before touching the network, so an invalidated
session fails fast with ``NoSessionError``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

from ..exceptions import NoSessionError, SessionExpiredError, is_session_expired
from .transport import (
    SESSION_NS,
    SESSION_SERVICE,
    SoapTransport,
    check_response,
    request_element,
    result_code,
)
from .. import xmlutil

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """An authenticated FinanzOnline session token."""

    token:        str
    tid:          str
    benid:        str
    account_name: str = ""
    created_at:   datetime = field(default_factory=datetime.now)
    valid:        bool = True

    @property
    def state(self) -> str:
        return "authenticated" if self.valid else "invalidated"

    def invalidate(self) -> None:
        """One-way gate: a cleared session is never valid again."""
        if self.valid:
            logger.info("Session for %s invalidated", self.tid)
        self.valid = False

    def require(self) -> "Session":
        if not self.valid:
            raise NoSessionError()
        return self

    def guard(self, exc: BaseException) -> None:
        """Invalidate before the caller re-raises a session-expired error."""
        if is_session_expired(exc):
            self.invalidate()

    def to_dict(self) -> dict:
        return {
            "account_name": self.account_name,
            "tid":          self.tid,
            "benid":        self.benid,
            "created_at":   self.created_at.isoformat(),
            "valid":        self.valid,
        }


class SessionService:
    """``Login`` / ``Logout`` against the session webservice."""

    def __init__(self, transport: SoapTransport) -> None:
        self.transport = transport

    @property
    def url(self) -> str:
        return self.transport.endpoint(SESSION_SERVICE)

    def login(
        self,
        tid:          str,
        benid:        str,
        pin:          str,
        *,
        account_name: str = "",
        cancel:       threading.Event | None = None,
    ) -> Session:
        """
        Authenticate and return a fresh session.

        Raises the typed protocol error (``InvalidCredentialsError``,
        ``UserLockedTemporarilyError``, ``MaintenanceError`` ...) on a
        non-zero result code. Never returns a half-built session.
        """
        req = request_element(
            "Login", SESSION_NS,
            tid=tid, benid=benid, pin=pin, heression="false",
        )
        resp = self.transport.call(self.url, req, cancel=cancel)
        check_response(*result_code(resp))

        token = xmlutil.text(resp, "id")
        logger.info("Logged in to FinanzOnline as %s/%s", tid, benid)
        return Session(token=token, tid=tid, benid=benid, account_name=account_name)

    def logout(self, session: Session, *, cancel: threading.Event | None = None) -> None:
        """
        End *session*. Idempotent: an already invalidated session is a no-op
        and an expired-session result code is absorbed.
        """
        if not session.valid:
            return
        req = request_element(
            "Logout", SESSION_NS,
            id=session.token, tid=session.tid, benid=session.benid,
        )
        resp = self.transport.call(self.url, req, cancel=cancel)
        try:
            check_response(*result_code(resp))
        except SessionExpiredError:
            logger.debug("Session already expired at logout")
        session.invalidate()
        logger.info("Logged out %s", session.tid)


__all__ = ["Session", "SessionService"]
