"""
amtsbote.storage.base
~~~~~~~~~~~~~~~~~~~~~
Submission record and the abstract repository interface.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Protocol, runtime_checkable

from ..models import DocumentStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SubmissionRecord:
    """One regulated document sent (or about to be sent) to an authority."""

    account:    str
    kind:       str                       # uva | zm | elda-anmeldung | elda-abmeldung | ...
    period:     str = ""                  # "2025-01", "Q1/2025", or empty
    status:     DocumentStatus = DocumentStatus.DRAFT
    reference:  str = ""
    payload:    bytes = b""
    id:         str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        self.status = DocumentStatus(self.status)

    def to_dict(self, *, include_payload: bool = False) -> dict:
        d = {
            "id":         self.id,
            "account":    self.account,
            "kind":       self.kind,
            "period":     self.period,
            "status":     str(self.status),
            "reference":  self.reference,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_payload:
            d["payload"] = self.payload.decode("utf-8", errors="replace")
        return d


@runtime_checkable
class SubmissionRepository(Protocol):
    """Storage abstraction for submission history."""

    def save(self, record: SubmissionRecord) -> bool:
        """
        Insert a record.

        Returns ``True`` if saved, ``False`` if the id already exists.
        """
        ...

    def get(self, record_id: str) -> SubmissionRecord | None:
        ...

    def update_status(
        self, record_id: str, status: DocumentStatus | str, reference: str | None = None,
    ) -> SubmissionRecord:
        """
        Move a record along the lifecycle. Illegal moves raise
        ``DocumentValidationError``; an unknown id raises ``KeyError``.
        """
        ...

    def list_all(self) -> Iterable[SubmissionRecord]:
        """All records, newest first."""
        ...

    def find(
        self, *, account: str | None = None, kind: str | None = None, status: str | None = None,
    ) -> Iterable[SubmissionRecord]:
        ...

    def delete(self, record_id: str) -> bool:
        ...

    def close(self) -> None:
        ...


__all__ = ["SubmissionRecord", "SubmissionRepository"]
