"""
amtsbote.fonws
~~~~~~~~~~~~~~
Client for the FinanzOnline SOAP webservices.

Usage::

    from amtsbote.fonws import SoapTransport, SessionService, DataboxService

    with SoapTransport() as transport:
        session = SessionService(transport).login(tid, benid, pin)
        for entry in DataboxService(transport).list(session):
            print(entry.applkey, entry.type_name, entry.action_required)
        SessionService(transport).logout(session)
"""

from .databox import DataboxEntry, DataboxService
from .session import Session, SessionService
from .transport import SoapTransport, build_envelope, check_response, parse_envelope
from .uid import (
    UIDService,
    UIDValidationResult,
    parse_uid_csv,
    parse_uid_list,
    write_uid_results_csv,
)
from .upload import FileUploadService, UploadResult

__all__ = [
    "DataboxEntry",
    "DataboxService",
    "FileUploadService",
    "Session",
    "SessionService",
    "SoapTransport",
    "UIDService",
    "UIDValidationResult",
    "UploadResult",
    "build_envelope",
    "check_response",
    "parse_envelope",
    "parse_uid_csv",
    "parse_uid_list",
    "write_uid_results_csv",
]
