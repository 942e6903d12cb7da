"""
amtsbote.exceptions
~~~~~~~~~~~~~~~~~~~
Exception hierarchy for the amtsbote library.

Every error carries a stable ``kind`` string. The retry predicate and the
session-invalidation predicate are ``isinstance`` checks against this
hierarchy, never string comparisons.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import ValidationResult


class AmtsboteError(Exception):
    """Base exception for all amtsbote errors."""

    kind = "error"

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.message = message

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class TransportError(AmtsboteError):
    """Network-level failure: DNS, connection reset, TLS, timeout."""

    kind = "transport"


class HTTPStatusError(AmtsboteError):
    """
    Non-200 HTTP response.

    Attributes:
        status_code: The HTTP status returned by the server.
        body:        Response body, truncated for display.
    """

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"HTTP error {status_code}: {body[:200]}".rstrip(": "))
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 429

    @property
    def kind(self) -> str:  # type: ignore[override]
        return "http-transient" if self.retryable else "http-terminal"


class CancelledError(AmtsboteError):
    """The caller's cancellation event fired before the operation finished."""

    kind = "cancelled"


# ---------------------------------------------------------------------------
# Protocol (non-zero result codes in a well-formed response)
# ---------------------------------------------------------------------------

class ProtocolError(AmtsboteError):
    """
    A well-formed response carrying a non-zero result code.

    Attributes:
        code:           Integer result code returned by the portal.
        server_message: The ``msg`` text sent alongside the code.
    """

    kind = "protocol"

    def __init__(self, message: str, *, code: int, server_message: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.server_message = server_message


class SessionExpiredError(ProtocolError):
    kind = "session-expired"


class MaintenanceError(ProtocolError):
    kind = "maintenance"


class TechnicalError(ProtocolError):
    kind = "technical"


class InvalidCredentialsError(ProtocolError):
    kind = "invalid-credentials"


class UserLockedTemporarilyError(ProtocolError):
    kind = "user-locked-temporarily"


class UserLockedPermanentlyError(ProtocolError):
    kind = "user-locked-permanently"


class NotWebserviceUserError(ProtocolError):
    kind = "not-webservice-user"


class ParticipantLockedError(ProtocolError):
    kind = "participant-locked"


class UIDDailyLimitError(ProtocolError):
    kind = "uid-daily-limit"


class UIDNotFoundError(ProtocolError):
    kind = "uid-not-found"


class ELDAError(ProtocolError):
    """Non-zero ``rc`` returned by the ELDA webservice."""

    kind = "elda"


class FirmenbuchError(ProtocolError):
    """Non-zero ``rc`` in an ``FBAntwort`` from the companies register."""

    kind = "firmenbuch"


# ---------------------------------------------------------------------------
# Session, documents, codecs
# ---------------------------------------------------------------------------

class NoSessionError(AmtsboteError):
    """An authenticated operation was attempted without a valid session."""

    kind = "no-session"

    def __init__(self, message: str = "No active session. Please log in first.") -> None:
        super().__init__(message)


class DocumentValidationError(AmtsboteError):
    """
    Raised when a regulated document breaks a structural or business rule.

    Attributes:
        result: The full ``ValidationResult`` with every (code, field, message).
    """

    kind = "validation"

    def __init__(self, message: str, *, result: "ValidationResult | None" = None) -> None:
        super().__init__(message)
        self.result = result


class CodecError(AmtsboteError):
    """Malformed input to a decoder, or an encoder failure."""

    kind = "codec"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class CredentialStoreError(AmtsboteError):
    """The credential store could not be read, decrypted or written."""

    kind = "credential-store"


class AccountNotFoundError(AmtsboteError):
    kind = "not-found"


class DuplicateAccountError(AmtsboteError):
    kind = "duplicate"


# ---------------------------------------------------------------------------
# Result-code lifting
# ---------------------------------------------------------------------------

_PROTOCOL_CODES: dict[int, tuple[type[ProtocolError], str]] = {
    -1:   (SessionExpiredError,        "Session expired. Please log in again."),
    -2:   (MaintenanceError,           "FinanzOnline is under maintenance. Try again later."),
    -3:   (TechnicalError,             "Technical error. Please try again later."),
    -4:   (InvalidCredentialsError,    "Invalid credentials. Check Teilnehmer-ID, Benutzer-ID, and PIN."),
    -5:   (UserLockedTemporarilyError, "User temporarily locked."),
    -6:   (UserLockedPermanentlyError, "User permanently locked."),
    -7:   (NotWebserviceUserError,     "User is not a webservice user."),
    -8:   (ParticipantLockedError,     "Participant locked."),
    1513: (UIDDailyLimitError,         "Daily query limit for this UID exceeded."),
    1514: (UIDNotFoundError,           "UID not found."),
}


def protocol_error_for(code: int, server_message: str = "") -> ProtocolError:
    """Map a non-zero portal result code to its typed error."""
    cls, text = _PROTOCOL_CODES.get(code, (ProtocolError, f"Unknown error (code {code})"))
    if server_message:
        text = f"{text} ({server_message})"
    return cls(text, code=code, server_message=server_message)


def is_retryable(exc: BaseException) -> bool:
    """Only network failures and 429/5xx statuses are worth another attempt."""
    if isinstance(exc, TransportError):
        return True
    if isinstance(exc, HTTPStatusError):
        return exc.retryable
    return False


def is_session_expired(exc: BaseException) -> bool:
    return isinstance(exc, SessionExpiredError)


def error_envelope(exc: BaseException) -> dict[str, Any]:
    """JSON error envelope shared by the CLI ``--json`` mode and the HTTP API."""
    envelope: dict[str, Any] = {
        "error":      True,
        "error_type": getattr(exc, "kind", "error"),
        "message":    str(exc),
    }
    if isinstance(exc, ProtocolError):
        envelope["code"] = exc.code
        if exc.server_message:
            envelope["server_message"] = exc.server_message
    if isinstance(exc, HTTPStatusError):
        envelope["status_code"] = exc.status_code
    if isinstance(exc, DocumentValidationError) and exc.result is not None:
        envelope["errors"] = [i.to_dict() for i in exc.result.errors]
    return envelope
