"""One-pass certificate validation.

The :class:`ValidationOrchestrator` loads a certificate/key pair through
a :class:`CertificateStore`, parses it, and runs the key-pair, domain and
expiry checks, producing a single :class:`ValidationResult`.

Pipeline::

    PENDING → LOADED → PARSED → KEY_CHECKED → DOMAIN_CHECKED
            → EXPIRY_CHECKED → DONE

Loading and parsing failures (``MISSING``, ``PERMISSION_DENIED``,
``INVALID_FORMAT``) jump straight to ``FAILED``: there is nothing
meaningful left to check.  Key, domain and expiry findings are recorded
and the pass continues, so callers see every problem at once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from milou_tls.core.errors import CertificateError
from milou_tls.core.state import assert_transition
from milou_tls.core.types import (
    CertificateSource,
    DomainMatch,
    ExpiryState,
    MatchResult,
    PipelineState,
    ValidationPolicy,
    ValidationStatus,
)
from milou_tls.models.validation import ValidationIssue, ValidationResult, most_severe
from milou_tls.ssl.domains import match_domains
from milou_tls.ssl.expiration import ExpirationMonitor, ExpiryAssessment
from milou_tls.ssl.pairing import match_key_pair
from milou_tls.ssl.parser import parse_certificate, parse_private_key

if TYPE_CHECKING:
    from milou_tls.config.settings import ExpirySettings, TlsSettings
    from milou_tls.models.certificate import CertificateRecord, KeyMaterial
    from milou_tls.ssl.store import CertificateStore

log = logging.getLogger(__name__)


class _PipelineRun:
    """Mutable bookkeeping for a single pass; frozen into a result at the end."""

    def __init__(self, domains: tuple[str, ...], checked_at: datetime) -> None:
        self.domains = domains
        self.checked_at = checked_at
        self.state = PipelineState.PENDING
        self.history: list[PipelineState] = [PipelineState.PENDING]
        self.issues: list[ValidationIssue] = []
        self.record: CertificateRecord | None = None
        self.key: KeyMaterial | None = None
        self.days_remaining: int | None = None

    def advance(self, target: PipelineState) -> None:
        assert_transition(self.state, target)
        self.state = target
        self.history.append(target)

    def note(self, kind: ValidationStatus, message: str) -> None:
        self.issues.append(ValidationIssue(kind=kind, message=message))
        log.warning("Certificate check: %s: %s", kind.value, message)

    def fail(self, kind: ValidationStatus, message: str) -> None:
        self.note(kind, message)
        self.advance(PipelineState.FAILED)

    def result(self) -> ValidationResult:
        return ValidationResult(
            status=most_severe(self.issues),
            issues=tuple(self.issues),
            checked_domains=self.domains,
            checked_at=self.checked_at,
            state=self.state,
            days_remaining=self.days_remaining,
            record=self.record,
        )


class ValidationOrchestrator:
    """Compose parser, pairing, domain and expiry checks into one pass.

    Parameters
    ----------
    expiry:
        Expiry thresholds; defaults to 30 / 7 days.
    policy:
        ``lenient`` reports a certificate inside the critical window as
        ``EXPIRING_SOON``; ``strict`` reports it as ``EXPIRED``.
    monitor:
        Pre-built :class:`ExpirationMonitor` (mainly to inject a clock).

    """

    def __init__(
        self,
        expiry: ExpirySettings | None = None,
        policy: ValidationPolicy = ValidationPolicy.LENIENT,
        *,
        monitor: ExpirationMonitor | None = None,
    ) -> None:
        if monitor is None:
            monitor = (
                ExpirationMonitor.from_settings(expiry) if expiry else ExpirationMonitor()
            )
        self._monitor = monitor
        self._policy = policy

    @classmethod
    def from_settings(
        cls,
        settings: TlsSettings,
        *,
        monitor: ExpirationMonitor | None = None,
    ) -> ValidationOrchestrator:
        return cls(settings.expiry, settings.ssl.policy, monitor=monitor)

    @property
    def policy(self) -> ValidationPolicy:
        return self._policy

    # -- public API -----------------------------------------------------------

    def validate(
        self,
        store: CertificateStore,
        domains: Iterable[str],
        source: CertificateSource = CertificateSource.UNKNOWN,
    ) -> ValidationResult:
        """Validate the pair held by *store* for every name in *domains*."""
        run = self._start(domains)

        try:
            cert_pem, key_pem = store.read_pair()
        except CertificateError as exc:
            run.fail(exc.kind, exc.detail)
            return self._finish(run)

        if cert_pem is None:
            run.fail(ValidationStatus.MISSING, f"certificate not found: {store.cert_path}")
            return self._finish(run)
        if key_pem is None:
            run.fail(ValidationStatus.MISSING, f"private key not found: {store.key_path}")
            return self._finish(run)

        if not store.check_key_permissions():
            log.warning("Private key %s is readable by other users", store.key_path)
        store.check_directory_permissions()

        return self._run_checks(run, cert_pem, key_pem, source)

    def validate_pem(
        self,
        cert_pem: bytes | str,
        key_pem: bytes | str,
        domains: Iterable[str],
        source: CertificateSource = CertificateSource.UNKNOWN,
    ) -> ValidationResult:
        """Validate in-memory PEM material (e.g. before importing it)."""
        run = self._start(domains)
        return self._run_checks(run, cert_pem, key_pem, source)

    # -- pipeline -------------------------------------------------------------

    def _start(self, domains: Iterable[str]) -> _PipelineRun:
        if isinstance(domains, str):
            domains = [domains]
        checked = tuple(d.strip() for d in domains if d and d.strip())
        return _PipelineRun(checked, datetime.fromtimestamp(self._monitor.now(), tz=UTC))

    def _run_checks(
        self,
        run: _PipelineRun,
        cert_pem: bytes | str,
        key_pem: bytes | str,
        source: CertificateSource,
    ) -> ValidationResult:
        run.advance(PipelineState.LOADED)

        try:
            run.record = parse_certificate(cert_pem, source=source)
        except CertificateError as exc:
            run.fail(exc.kind, f"certificate: {exc.detail}")
            return self._finish(run)
        try:
            run.key = parse_private_key(key_pem)
        except CertificateError as exc:
            run.fail(exc.kind, f"private key: {exc.detail}")
            return self._finish(run)
        run.advance(PipelineState.PARSED)

        if not run.record.san_entries:
            run.fail(
                ValidationStatus.INVALID_FORMAT,
                "certificate has no DNS subjectAltName entries",
            )
            return self._finish(run)

        self._check_key(run)
        self._check_domains(run)
        self._check_expiry(run)
        run.advance(PipelineState.DONE)
        return self._finish(run)

    def _check_key(self, run: _PipelineRun) -> None:
        if match_key_pair(run.record, run.key) is MatchResult.MISMATCHED_KEY:
            run.note(
                ValidationStatus.MISMATCHED_KEY,
                f"private key ({run.key.algorithm.value} {run.key.key_size}-bit) does not "
                f"match the certificate's public key",
            )
        run.advance(PipelineState.KEY_CHECKED)

    def _check_domains(self, run: _PipelineRun) -> None:
        record = run.record
        results = match_domains(run.domains, record.subject_cn, record.san_entries)
        for domain, outcome in results.items():
            if outcome is DomainMatch.DOMAIN_MISMATCH:
                run.note(
                    ValidationStatus.DOMAIN_MISMATCH,
                    f"certificate does not cover '{domain}' "
                    f"(names: {', '.join(record.san_entries)})",
                )
        run.advance(PipelineState.DOMAIN_CHECKED)

    def _check_expiry(self, run: _PipelineRun) -> None:
        record = run.record
        now = int(run.checked_at.timestamp())
        assessment = self._monitor.assess(record.not_after, now=now)
        run.days_remaining = assessment.days_remaining

        if now < record.not_before:
            log.warning(
                "Certificate is not valid until %s",
                record.not_before_dt.isoformat(),
            )

        if assessment.state is ExpiryState.EXPIRED:
            run.note(
                ValidationStatus.EXPIRED,
                f"certificate expired {abs(assessment.days_remaining)} day(s) ago "
                f"(not after {record.not_after_dt.isoformat()})",
            )
        elif assessment.state is ExpiryState.EXPIRING_SOON:
            self._note_expiring(run, assessment)
        run.advance(PipelineState.EXPIRY_CHECKED)

    def _note_expiring(self, run: _PipelineRun, assessment: ExpiryAssessment) -> None:
        days = assessment.days_remaining
        if assessment.critical and self._policy is ValidationPolicy.STRICT:
            run.note(
                ValidationStatus.EXPIRED,
                f"certificate expires in {days} day(s), inside the critical window of "
                f"{self._monitor.critical_days} day(s)",
            )
        elif assessment.critical:
            run.note(
                ValidationStatus.EXPIRING_SOON,
                f"certificate expires in {days} day(s) (critical: under "
                f"{self._monitor.critical_days} day(s))",
            )
        else:
            run.note(
                ValidationStatus.EXPIRING_SOON,
                f"certificate expires in {days} day(s) (warning threshold "
                f"{self._monitor.warn_days} day(s))",
            )

    @staticmethod
    def _finish(run: _PipelineRun) -> ValidationResult:
        result = run.result()
        log.info(
            "Certificate validation finished: status=%s state=%s domains=%s issues=%d",
            result.status.value,
            result.state.value,
            list(result.checked_domains),
            len(result.issues),
        )
        return result


def should_reload_proxy(result: ValidationResult) -> bool:
    """Whether the reverse proxy may pick up the pair (``OK``/``EXPIRING_SOON`` only)."""
    return result.usable
