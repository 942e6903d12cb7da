"""
amtsbote.storage
~~~~~~~~~~~~~~~~
Submission history persistence.

Usage::

    from amtsbote.storage import SQLiteSubmissionRepository, SubmissionRecord

    with SQLiteSubmissionRepository() as repo:
        rec = SubmissionRecord(account="firma-a", kind="uva", period="2025-01", payload=xml)
        repo.save(rec)
        repo.update_status(rec.id, "submitted", reference="FO-2025-0001")
"""

from .base import SubmissionRecord, SubmissionRepository
from .sqlite import SQLiteSubmissionRepository

__all__ = [
    "SQLiteSubmissionRepository",
    "SubmissionRecord",
    "SubmissionRepository",
]
