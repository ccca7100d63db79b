"""Self-signed certificate generation.

Builds a fresh key and a self-signed X.509 certificate whose SAN lists
every requested domain verbatim (wildcards included; whether a wildcard
is appropriate is the caller's decision).  Transient failures of the
crypto backend or entropy source are retried a bounded number of times
with a short fixed delay, then surfaced as ``GENERATION_FAILED``.

Usage::

    generator = CertificateGenerator(settings.generation)
    pair = generator.generate_and_store(store, "example.com", ["*.example.com"])
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import InternalError, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from milou_tls.core.types import CertificateSource, KeyAlgorithm
from milou_tls.models.certificate import KeyMaterial
from milou_tls.ssl.cert_utils import (
    LOCALHOST_IPS,
    LOCALHOST_NAMES,
    build_eku,
    build_key_usage,
    build_san,
    ordered_domains,
)
from milou_tls.ssl.parser import parse_certificate, public_key_fingerprint

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificateIssuerPrivateKeyTypes,
    )

    from milou_tls.config.settings import GenerationSettings
    from milou_tls.models.certificate import CertificateRecord
    from milou_tls.ssl.store import CertificateStore

log = logging.getLogger(__name__)

_EC_CURVES = {
    "secp256r1": ec.SECP256R1,
    "secp384r1": ec.SECP384R1,
}

_MIN_RSA_KEY_SIZE = 2048
_ORGANIZATION = "Milou"


class GenerationError(Exception):
    """Raised when a certificate/key pair cannot be generated.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


@dataclass(frozen=True)
class GenerationParams:
    """Key and validity parameters for one generation request."""

    key_algorithm: KeyAlgorithm = KeyAlgorithm.RSA
    rsa_key_size: int = 2048
    ec_curve: str = "secp256r1"
    validity_days: int = 365
    include_localhost: bool = False

    @classmethod
    def from_settings(cls, settings: GenerationSettings) -> GenerationParams:
        return cls(
            key_algorithm=KeyAlgorithm(settings.key_algorithm.upper()),
            rsa_key_size=settings.rsa_key_size,
            ec_curve=settings.ec_curve,
            validity_days=settings.validity_days,
            include_localhost=settings.include_localhost,
        )


@dataclass(frozen=True)
class GeneratedPair:
    """A freshly generated certificate with its key, parsed and encoded."""

    record: CertificateRecord
    key: KeyMaterial
    cert_pem: bytes
    key_pem: bytes

    def __repr__(self) -> str:
        return (
            f"GeneratedPair(cn={self.record.subject_cn!r}, "
            f"san={list(self.record.san_entries)!r}, key={self.key.algorithm.value})"
        )


class CertificateGenerator:
    """Synthesise self-signed certificate/key pairs."""

    def __init__(
        self,
        settings: GenerationSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._defaults = (
            GenerationParams.from_settings(settings) if settings else GenerationParams()
        )
        self._max_attempts = settings.max_attempts if settings else 3
        self._retry_delay = settings.retry_delay_seconds if settings else 0.5
        self._sleep = sleep
        self._clock = clock

    @property
    def defaults(self) -> GenerationParams:
        return self._defaults

    # -- public API -----------------------------------------------------------

    def generate(
        self,
        primary_domain: str,
        additional_domains: Iterable[str] = (),
        params: GenerationParams | None = None,
    ) -> GeneratedPair:
        """Generate a self-signed pair covering every requested domain.

        Raises
        ------
        GenerationError
            When the request is invalid or generation keeps failing after
            ``max_attempts`` tries.

        """
        params = params or self._defaults
        domains = self._requested_names(primary_domain, additional_domains, params)

        last_exc: GenerationError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._generate_once(primary_domain.strip(), domains, params)
            except GenerationError as exc:
                if not exc.retryable or attempt == self._max_attempts:
                    raise
                last_exc = exc
                log.warning(
                    "Certificate generation attempt %d/%d failed: %s",
                    attempt,
                    self._max_attempts,
                    exc.detail,
                )
                self._sleep(self._retry_delay)

        raise last_exc  # type: ignore[misc]

    def generate_and_store(
        self,
        store: CertificateStore,
        primary_domain: str,
        additional_domains: Iterable[str] = (),
        params: GenerationParams | None = None,
    ) -> GeneratedPair:
        """Generate a pair and write it atomically through *store*."""
        pair = self.generate(primary_domain, additional_domains, params)
        store.write(pair.cert_pem, pair.key_pem)
        log.info(
            "Stored self-signed certificate for %s at %s",
            ", ".join(pair.record.san_entries),
            store.cert_path,
        )
        return pair

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _requested_names(
        primary_domain: str,
        additional_domains: Iterable[str],
        params: GenerationParams,
    ) -> list[str]:
        if not primary_domain or not primary_domain.strip():
            msg = "a primary domain is required to generate a certificate"
            raise GenerationError(msg)
        extra = list(additional_domains)
        if params.include_localhost:
            extra.extend(LOCALHOST_NAMES)
        domains = ordered_domains(primary_domain, extra)
        for name in domains:
            if not name.isascii():
                msg = f"domain {name!r} must be given in ASCII (punycode) form"
                raise GenerationError(msg)
        if params.validity_days < 1:
            msg = f"validity_days must be positive (got {params.validity_days})"
            raise GenerationError(msg)
        return domains

    def _new_private_key(self, params: GenerationParams) -> CertificateIssuerPrivateKeyTypes:
        if params.key_algorithm is KeyAlgorithm.RSA:
            if params.rsa_key_size < _MIN_RSA_KEY_SIZE:
                msg = f"RSA key size must be >= {_MIN_RSA_KEY_SIZE} (got {params.rsa_key_size})"
                raise GenerationError(msg)
            return rsa.generate_private_key(public_exponent=65537, key_size=params.rsa_key_size)
        curve = _EC_CURVES.get(params.ec_curve)
        if curve is None:
            msg = f"Unsupported EC curve '{params.ec_curve}'; supported: {sorted(_EC_CURVES)}"
            raise GenerationError(msg)
        return ec.generate_private_key(curve())

    def _generate_once(
        self,
        primary_domain: str,
        domains: list[str],
        params: GenerationParams,
    ) -> GeneratedPair:
        try:
            private_key = self._new_private_key(params)
            cert = self._build_certificate(private_key, primary_domain, domains, params)
        except GenerationError:
            raise
        except (OSError, InternalError) as exc:
            msg = f"cryptographic backend or entropy source failed: {exc}"
            raise GenerationError(msg, retryable=True) from exc
        except UnsupportedAlgorithm as exc:
            msg = f"cryptographic toolkit does not support the requested key: {exc}"
            raise GenerationError(msg) from exc
        except ValueError as exc:
            msg = f"invalid generation request: {exc}"
            raise GenerationError(msg) from exc

        cert_pem = cert.public_bytes(serialization.Encoding.PEM)
        key_pem = private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

        record = parse_certificate(cert_pem, source=CertificateSource.GENERATED)
        pub_key = private_key.public_key()
        key = KeyMaterial(
            public_key_fingerprint=public_key_fingerprint(pub_key),
            algorithm=params.key_algorithm,
            key_size=record.key_size or 0,
            private_key=private_key,
        )

        log.info(
            "Generated self-signed certificate: serial=%s, cn=%s, validity=%d days, key=%s",
            record.serial_number,
            record.subject_cn,
            params.validity_days,
            params.key_algorithm.value,
        )
        return GeneratedPair(record=record, key=key, cert_pem=cert_pem, key_pem=key_pem)

    def _build_certificate(
        self,
        private_key: CertificateIssuerPrivateKeyTypes,
        primary_domain: str,
        domains: list[str],
        params: GenerationParams,
    ) -> x509.Certificate:
        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, _ORGANIZATION),
                x509.NameAttribute(NameOID.COMMON_NAME, primary_domain),
            ]
        )
        now = self._clock().replace(microsecond=0)
        public_key = private_key.public_key()
        ip_addresses = LOCALHOST_IPS if params.include_localhost else ()

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=params.validity_days))
            .add_extension(build_san(domains, ip_addresses), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(build_key_usage(params.key_algorithm), critical=True)
            .add_extension(build_eku(), critical=False)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(public_key),
                critical=False,
            )
        )
        return builder.sign(private_key, hashes.SHA256())
