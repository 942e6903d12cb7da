"""
amtsbote.models
~~~~~~~~~~~~~~~
Shared building blocks for every regulated document.

Key design decisions
--------------------
* Validators never raise. They collect ``ValidationIssue`` tuples
  (stable rule code, field path, human message) into a
  ``ValidationResult``; callers decide whether to raise via
  ``raise_if_invalid()``.

* ``DocumentStatus`` is a strictly monotone state machine::

      draft → validated → submitted → accepted | rejected | processed

  A rejected document is never re-opened; copy it into a fresh draft.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .exceptions import DocumentValidationError


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationIssue:
    """One violated rule."""

    code:    str
    field:   str
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.field}: {self.message}" if self.field else f"[{self.code}] {self.message}"

    def to_dict(self) -> dict:
        return {"code": self.code, "field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    """Outcome of a validator: errors make the document invalid, warnings do not."""

    errors:   list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, code: str, field_path: str, message: str) -> None:
        self.errors.append(ValidationIssue(code, field_path, message))

    def warn(self, code: str, field_path: str, message: str) -> None:
        self.warnings.append(ValidationIssue(code, field_path, message))

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def codes(self) -> list[str]:
        return [i.code for i in self.errors]

    def raise_if_invalid(self, what: str = "document") -> None:
        if self.errors:
            first = self.errors[0]
            more  = f" (+{len(self.errors) - 1} more)" if len(self.errors) > 1 else ""
            raise DocumentValidationError(f"{what} is invalid: {first}{more}", result=self)

    def to_dict(self) -> dict:
        return {
            "valid":    self.valid,
            "errors":   [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
        }


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    DRAFT     = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    ACCEPTED  = "accepted"
    REJECTED  = "rejected"
    PROCESSED = "processed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_final(self) -> bool:
        return self in _FINAL


_FINAL = {DocumentStatus.ACCEPTED, DocumentStatus.REJECTED, DocumentStatus.PROCESSED}

_TRANSITIONS: dict[DocumentStatus, set[DocumentStatus]] = {
    DocumentStatus.DRAFT:     {DocumentStatus.VALIDATED, DocumentStatus.SUBMITTED},
    DocumentStatus.VALIDATED: {DocumentStatus.SUBMITTED},
    DocumentStatus.SUBMITTED: set(_FINAL),
    DocumentStatus.ACCEPTED:  set(),
    DocumentStatus.REJECTED:  set(),
    DocumentStatus.PROCESSED: set(),
}


def advance(current: DocumentStatus | str, target: DocumentStatus | str) -> DocumentStatus:
    """
    Return *target* if the move from *current* is legal.

    Re-entering the current state is a no-op (re-validating a validated
    document is allowed). Anything that moves backwards raises.
    """
    current = DocumentStatus(current)
    target  = DocumentStatus(target)
    if target == current or target in _TRANSITIONS[current]:
        return target
    result = ValidationResult()
    result.add("status_transition", "status", f"cannot move from {current} to {target}")
    raise DocumentValidationError(
        f"Illegal status transition {current} → {target}", result=result,
    )


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "DocumentStatus",
    "advance",
]
