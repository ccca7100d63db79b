"""Certificate and key entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from milou_tls.core.types import CertificateSource, KeyAlgorithm

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import (
        CertificateIssuerPrivateKeyTypes,
    )


@dataclass(frozen=True)
class CertificateRecord:
    """Parsed, read-only view of one certificate.

    ``not_before`` and ``not_after`` are absolute UTC instants expressed
    as integer seconds since the epoch.  ``public_key_fingerprint`` is
    the SHA-256 digest of the SubjectPublicKeyInfo DER and is shared with
    :class:`KeyMaterial` for pairing checks.
    """

    subject_cn: str | None
    san_entries: tuple[str, ...]
    not_before: int
    not_after: int
    public_key_fingerprint: bytes
    signature_algorithm: str
    source: CertificateSource = CertificateSource.UNKNOWN
    subject: str = ""
    issuer: str = ""
    serial_number: str = ""
    key_algorithm: KeyAlgorithm | None = None
    key_size: int | None = None
    fingerprint: str = ""

    @property
    def is_self_signed(self) -> bool:
        return bool(self.subject) and self.subject == self.issuer

    @property
    def not_before_dt(self) -> datetime:
        return datetime.fromtimestamp(self.not_before, tz=UTC)

    @property
    def not_after_dt(self) -> datetime:
        return datetime.fromtimestamp(self.not_after, tz=UTC)

    def to_dict(self) -> dict:
        return {
            "subject_cn": self.subject_cn,
            "san_entries": list(self.san_entries),
            "not_before": self.not_before_dt.isoformat(),
            "not_after": self.not_after_dt.isoformat(),
            "public_key_fingerprint": self.public_key_fingerprint.hex(),
            "signature_algorithm": self.signature_algorithm,
            "source": self.source.value,
            "subject": self.subject,
            "issuer": self.issuer,
            "serial_number": self.serial_number,
            "key_algorithm": self.key_algorithm.value if self.key_algorithm else None,
            "key_size": self.key_size,
            "fingerprint": self.fingerprint,
            "self_signed": self.is_self_signed,
        }


@dataclass(frozen=True)
class KeyMaterial:
    """Parsed private key.

    The private key object is kept for signing during generation only;
    it is excluded from ``repr`` and never serialized by this class.
    """

    public_key_fingerprint: bytes
    algorithm: KeyAlgorithm
    key_size: int
    private_key: CertificateIssuerPrivateKeyTypes | None = field(
        default=None,
        repr=False,
        compare=False,
    )
