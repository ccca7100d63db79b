"""SSL setup workflow driven by ``SSL_MODE``.

=============  ============================================================
Mode           Behaviour
=============  ============================================================
``auto``       Preserve a usable pair; otherwise back up whatever is on
               disk and generate a fresh self-signed pair.
``generate``   Always back up and generate.
``existing``   Use operator-supplied material, either in place or imported
               from ``import_cert`` / ``import_key`` into the store.
``none``       TLS disabled: back up and remove the live pair.
=============  ============================================================

Generated and imported material is re-validated through the same
:class:`ValidationOrchestrator` pass as anything else before the action
is recorded in the store's info file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import CertificateSource, ExitCode, SetupAction, SslMode
from milou_tls.services.validation import ValidationOrchestrator
from milou_tls.ssl.generator import CertificateGenerator, GenerationError
from milou_tls.ssl.store import CertificateStore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from milou_tls.config.settings import TlsSettings
    from milou_tls.models.validation import ValidationResult
    from milou_tls.ssl.generator import GenerationParams

log = logging.getLogger(__name__)

_SOURCE_BY_ACTION = {
    SetupAction.GENERATED.value: CertificateSource.GENERATED,
    SetupAction.IMPORTED.value: CertificateSource.OPERATOR_SUPPLIED,
}


def source_from_info(info: dict | None) -> CertificateSource:
    """Infer where the live pair came from using the store's info file."""
    if not info:
        return CertificateSource.UNKNOWN
    source = info.get("source")
    if source in {s.value for s in CertificateSource}:
        return CertificateSource(source)
    return _SOURCE_BY_ACTION.get(info.get("action", ""), CertificateSource.UNKNOWN)


@dataclass(frozen=True)
class SetupOutcome:
    """What one setup run did and how the caller should exit."""

    action: SetupAction | None
    exit_code: ExitCode
    message: str
    result: ValidationResult | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code is ExitCode.USABLE


class SslSetupService:
    """Bring the live certificate pair into the state the mode asks for."""

    def __init__(
        self,
        settings: TlsSettings,
        *,
        store: CertificateStore | None = None,
        generator: CertificateGenerator | None = None,
        orchestrator: ValidationOrchestrator | None = None,
    ) -> None:
        self._settings = settings
        self._store = store or CertificateStore.from_settings(settings.ssl)
        self._generator = generator or CertificateGenerator(settings.generation)
        self._orchestrator = orchestrator or ValidationOrchestrator.from_settings(settings)

    @property
    def store(self) -> CertificateStore:
        return self._store

    @property
    def generator(self) -> CertificateGenerator:
        return self._generator

    @property
    def orchestrator(self) -> ValidationOrchestrator:
        return self._orchestrator

    # -- entry point ----------------------------------------------------------

    def run(
        self,
        mode: SslMode | None = None,
        *,
        force: bool = False,
        import_cert: str | Path | None = None,
        import_key: str | Path | None = None,
    ) -> SetupOutcome:
        mode = mode or self._settings.ssl.mode
        log.info(
            "SSL setup: mode=%s domain=%s force=%s",
            mode.value,
            self._settings.ssl.domain,
            force,
        )
        self._store.remove_orphans()

        if mode is SslMode.NONE:
            return self.disable()
        if mode is SslMode.EXISTING:
            return self.use_existing(import_cert, import_key)
        if mode is SslMode.GENERATE:
            return self.generate()
        return self.auto(force=force)

    # -- modes ----------------------------------------------------------------

    def auto(self, *, force: bool = False) -> SetupOutcome:
        """Keep a healthy pair, otherwise regenerate."""
        if not force and self._store.exists():
            result = self.validate_current()
            if result.usable:
                log.info("Existing certificates are healthy; preserving them")
                self._record(SetupAction.PRESERVED, result, source=result.record.source)
                return SetupOutcome(
                    action=SetupAction.PRESERVED,
                    exit_code=ExitCode.USABLE,
                    message="existing certificate preserved",
                    result=result,
                )
            log.info("Existing certificates are not usable (%s); regenerating", result.status.value)
        elif force:
            log.info("Force requested; regenerating certificates")
        else:
            log.info("No certificates found; generating new ones")
        return self.generate()

    def generate(
        self,
        primary_domain: str | None = None,
        additional_domains: Iterable[str] | None = None,
        params: GenerationParams | None = None,
    ) -> SetupOutcome:
        """Back up, generate, store and re-validate a self-signed pair."""
        primary = primary_domain or self._settings.ssl.domain
        if additional_domains is None:
            additional_domains = self._settings.ssl.additional_domains
        additional = tuple(additional_domains)

        try:
            self._store.backup()
            pair = self._generator.generate_and_store(self._store, primary, additional, params)
        except GenerationError as exc:
            log.error("Certificate generation failed: %s", exc.detail)
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.GENERATION_FAILED,
                message=f"certificate generation failed: {exc.detail}",
            )
        except CertificateError as exc:
            log.error("Could not store generated certificate: %s", exc.detail)
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message=f"could not store generated certificate: {exc.detail}",
            )

        result = self._orchestrator.validate(
            self._store,
            (primary, *additional),
            source=CertificateSource.GENERATED,
        )
        if not result.usable:
            log.error("Generated certificates failed validation: %s", result.status.value)
            return SetupOutcome(
                action=SetupAction.GENERATED,
                exit_code=ExitCode.VALIDATION_FAILED,
                message="generated certificate failed validation",
                result=result,
            )

        self._record(
            SetupAction.GENERATED,
            result,
            source=CertificateSource.GENERATED,
            key_size=pair.key.key_size,
            key_algorithm=pair.key.algorithm.value,
        )
        return SetupOutcome(
            action=SetupAction.GENERATED,
            exit_code=ExitCode.USABLE,
            message="self-signed certificate generated",
            result=result,
        )

    def use_existing(
        self,
        import_cert: str | Path | None = None,
        import_key: str | Path | None = None,
    ) -> SetupOutcome:
        """Validate operator material, importing it into the store first if given."""
        if (import_cert is None) != (import_key is None):
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message="both a certificate and a key file are required to import",
            )

        domains = self._settings.ssl.domains
        source = CertificateSource.OPERATOR_SUPPLIED

        if import_cert is not None:
            outcome = self._import(Path(import_cert), Path(import_key), domains)
            if outcome is not None:
                return outcome

        result = self._orchestrator.validate(self._store, domains, source=source)
        if not result.usable:
            return SetupOutcome(
                action=SetupAction.IMPORTED,
                exit_code=ExitCode.VALIDATION_FAILED,
                message="operator-supplied certificate is not usable",
                result=result,
            )
        self._record(SetupAction.IMPORTED, result, source=source)
        return SetupOutcome(
            action=SetupAction.IMPORTED,
            exit_code=ExitCode.USABLE,
            message="operator-supplied certificate in use",
            result=result,
        )

    def disable(self) -> SetupOutcome:
        """TLS is off: back up and remove whatever is on disk."""
        try:
            removed = self._store.remove()
        except CertificateError as exc:
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message=exc.detail,
            )
        log.info("SSL disabled; %s", "certificates removed" if removed else "nothing to remove")
        return SetupOutcome(
            action=SetupAction.DISABLED,
            exit_code=ExitCode.USABLE,
            message="SSL disabled",
        )

    # -- helpers --------------------------------------------------------------

    def validate_current(self, domains: Iterable[str] | None = None) -> ValidationResult:
        """Validate the live pair for *domains* (defaults to the configured set)."""
        if domains is None:
            domains = self._settings.ssl.domains
        source = source_from_info(self._store.load_info())
        return self._orchestrator.validate(self._store, domains, source=source)

    def _import(
        self,
        cert_file: Path,
        key_file: Path,
        domains: tuple[str, ...],
    ) -> SetupOutcome | None:
        try:
            cert_pem = cert_file.read_bytes()
            key_pem = key_file.read_bytes()
        except OSError as exc:
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message=f"cannot read {exc.filename}: {exc.strerror or exc}",
            )

        candidate = self._orchestrator.validate_pem(
            cert_pem,
            key_pem,
            domains,
            source=CertificateSource.OPERATOR_SUPPLIED,
        )
        if not candidate.usable:
            log.error("Refusing to import %s: %s", cert_file, candidate.status.value)
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message=f"certificate {cert_file} is not usable",
                result=candidate,
            )

        try:
            self._store.backup()
            self._store.write(cert_pem, key_pem)
        except CertificateError as exc:
            return SetupOutcome(
                action=None,
                exit_code=ExitCode.VALIDATION_FAILED,
                message=exc.detail,
            )
        log.info("Imported certificate pair from %s", cert_file)
        return None

    def _record(
        self,
        action: SetupAction,
        result: ValidationResult,
        *,
        source: CertificateSource,
        **details: object,
    ) -> None:
        record = result.record
        try:
            self._store.save_info(
                self._settings.ssl.domain,
                action.value,
                source=source.value,
                domains=list(result.checked_domains),
                not_after=record.not_after_dt.isoformat() if record else None,
                days_remaining=result.days_remaining,
                **details,
            )
        except CertificateError as exc:
            # The pair itself is in place; a stale info file only affects reporting.
            log.warning("Could not record certificate info: %s", exc.detail)
