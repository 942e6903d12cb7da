"""
amtsbote
~~~~~~~~
Back-office toolkit for Austrian tax, social-insurance and company-register
workflows: FinanzOnline sessions, mailbox and filings, ELDA declarations,
Firmenbuch lookups, e-invoices and SEPA payments.

Typical usage::

    from amtsbote import SoapTransport, SessionService, DataboxService, UVA

    uva = UVA.build(2025, month=1, kz000=1_000_000, kz017=800_000, kz060=50_000)
    uva.validate().raise_if_invalid("UVA")

    with SoapTransport() as transport:
        session = SessionService(transport).login(tid, benid, pin)
        for entry in DataboxService(transport).list(session):
            print(entry.applkey, entry.type_name)
        SessionService(transport).logout(session)
"""

import logging

from .config import Config, TransportConfig, cfg
from .credentials import Account, AccountType, EncryptedCredentialStore, MemoryCredentialStore
from .dashboard import Dashboard, ServiceResult
from .exceptions import (
    AmtsboteError,
    CancelledError,
    CodecError,
    DocumentValidationError,
    NoSessionError,
    ProtocolError,
    SessionExpiredError,
    TransportError,
    error_envelope,
)
from .fonws import DataboxService, FileUploadService, SessionService, SoapTransport, UIDService
from .models import DocumentStatus, ValidationResult
from .money import Money
from .tax import UVA, ZM, ZMEntry

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Configuration
    "Config",
    "TransportConfig",
    "cfg",
    # Credentials / dashboard
    "Account",
    "AccountType",
    "EncryptedCredentialStore",
    "MemoryCredentialStore",
    "Dashboard",
    "ServiceResult",
    # FinanzOnline
    "DataboxService",
    "FileUploadService",
    "SessionService",
    "SoapTransport",
    "UIDService",
    # Documents
    "DocumentStatus",
    "Money",
    "UVA",
    "ValidationResult",
    "ZM",
    "ZMEntry",
    # Exceptions
    "AmtsboteError",
    "CancelledError",
    "CodecError",
    "DocumentValidationError",
    "NoSessionError",
    "ProtocolError",
    "SessionExpiredError",
    "TransportError",
    "error_envelope",
]
