"""Unit tests for milou_tls.core.types and milou_tls.models.validation."""

from __future__ import annotations

from datetime import UTC, datetime

from milou_tls.core.types import (
    STATUS_SEVERITY,
    ExitCode,
    PipelineState,
    ValidationStatus,
)
from milou_tls.models.validation import ValidationIssue, ValidationResult, most_severe


def _issue(kind: ValidationStatus) -> ValidationIssue:
    return ValidationIssue(kind=kind, message=f"{kind.value} happened")


def _result(*kinds: ValidationStatus) -> ValidationResult:
    issues = tuple(_issue(k) for k in kinds)
    return ValidationResult(
        status=most_severe(issues),
        issues=issues,
        checked_domains=("example.com",),
        checked_at=datetime(2025, 1, 1, tzinfo=UTC),
        state=PipelineState.DONE,
    )


class TestSeverity:
    def test_every_status_ranked(self):
        assert set(STATUS_SEVERITY) == set(ValidationStatus)

    def test_ordering(self):
        order = [
            ValidationStatus.OK,
            ValidationStatus.EXPIRING_SOON,
            ValidationStatus.DOMAIN_MISMATCH,
            ValidationStatus.MISMATCHED_KEY,
            ValidationStatus.EXPIRED,
            ValidationStatus.INVALID_FORMAT,
        ]
        ranks = [STATUS_SEVERITY[s] for s in order]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ranks)

    def test_most_severe(self):
        assert most_severe([]) is ValidationStatus.OK
        assert (
            most_severe([_issue(ValidationStatus.EXPIRING_SOON), _issue(ValidationStatus.EXPIRED)])
            is ValidationStatus.EXPIRED
        )

    def test_first_of_equal_rank_wins(self):
        issues = [_issue(ValidationStatus.MISSING), _issue(ValidationStatus.INVALID_FORMAT)]
        assert most_severe(issues) is ValidationStatus.MISSING


class TestValidationResult:
    def test_ok_is_usable(self):
        result = _result()
        assert result.status is ValidationStatus.OK
        assert result.usable is True
        assert result.exit_code is ExitCode.USABLE

    def test_expiring_soon_is_usable(self):
        assert _result(ValidationStatus.EXPIRING_SOON).usable is True

    def test_domain_mismatch_is_not_usable(self):
        result = _result(ValidationStatus.EXPIRING_SOON, ValidationStatus.DOMAIN_MISMATCH)
        assert result.usable is False
        assert result.exit_code is ExitCode.VALIDATION_FAILED
        assert result.has_issue(ValidationStatus.EXPIRING_SOON)

    def test_to_dict(self):
        data = _result(ValidationStatus.EXPIRED).to_dict()
        assert data["status"] == "EXPIRED"
        assert data["usable"] is False
        assert data["issues"] == [{"kind": "EXPIRED", "message": "EXPIRED happened"}]
        assert data["certificate"] is None
        assert data["checked_at"].startswith("2025-01-01")

    def test_issue_str(self):
        assert str(_issue(ValidationStatus.MISSING)) == "MISSING: MISSING happened"
