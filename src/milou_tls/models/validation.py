"""Validation result entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from milou_tls.core.types import (
    STATUS_SEVERITY,
    USABLE_STATUSES,
    ExitCode,
    PipelineState,
    ValidationStatus,
)

if TYPE_CHECKING:
    from milou_tls.models.certificate import CertificateRecord


@dataclass(frozen=True)
class ValidationIssue:
    kind: ValidationStatus
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class ValidationResult:
    """Output of one orchestration pass.

    ``status`` is the most severe issue found, or ``OK`` when there are
    none.  ``issues`` keeps every finding in the order it was recorded.
    """

    status: ValidationStatus
    issues: tuple[ValidationIssue, ...]
    checked_domains: tuple[str, ...]
    checked_at: datetime
    state: PipelineState
    days_remaining: int | None = None
    record: CertificateRecord | None = field(default=None, compare=False)

    @property
    def usable(self) -> bool:
        return self.status in USABLE_STATUSES

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.USABLE if self.usable else ExitCode.VALIDATION_FAILED

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]

    def has_issue(self, kind: ValidationStatus) -> bool:
        return any(issue.kind == kind for issue in self.issues)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "usable": self.usable,
            "issues": [
                {"kind": issue.kind.value, "message": issue.message} for issue in self.issues
            ],
            "checked_domains": list(self.checked_domains),
            "checked_at": self.checked_at.isoformat(),
            "state": self.state.value,
            "days_remaining": self.days_remaining,
            "certificate": self.record.to_dict() if self.record else None,
        }


def most_severe(issues: tuple[ValidationIssue, ...] | list[ValidationIssue]) -> ValidationStatus:
    """Return the highest-priority status among *issues* (``OK`` if empty)."""
    status = ValidationStatus.OK
    for issue in issues:
        if STATUS_SEVERITY[issue.kind] > STATUS_SEVERITY[status]:
            status = issue.kind
    return status
