"""PEM certificate and private-key parsing.

Decode raw PEM bytes into :class:`CertificateRecord` / :class:`KeyMaterial`.
Every decoding problem (malformed PEM, truncated DER, unsupported
signature or key algorithm, encrypted key) is classified here as a
:class:`CertificateError` with kind ``INVALID_FORMAT``; nothing else
escapes.

Validity bounds are converted to epoch seconds once, at parse time, so
all later arithmetic is plain integer math.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import CertificateSource, KeyAlgorithm, ValidationStatus
from milou_tls.models.certificate import CertificateRecord, KeyMaterial

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# OID -> human-readable signature algorithm name (accepted algorithms only)
# ---------------------------------------------------------------------------
_SIG_ALG_NAMES: dict[str, str] = {
    SignatureAlgorithmOID.RSA_WITH_SHA256.dotted_string: "SHA256withRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA384.dotted_string: "SHA384withRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA512.dotted_string: "SHA512withRSA",
    SignatureAlgorithmOID.RSASSA_PSS.dotted_string: "RSASSA-PSS",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256.dotted_string: "SHA256withECDSA",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384.dotted_string: "SHA384withECDSA",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512.dotted_string: "SHA512withECDSA",
}


def _invalid(detail: str) -> CertificateError:
    return CertificateError(ValidationStatus.INVALID_FORMAT, detail)


def _as_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        return data.encode("ascii", errors="replace")
    return bytes(data)


# ---------------------------------------------------------------------------
# Public key helpers
# ---------------------------------------------------------------------------


def public_key_fingerprint(pub_key: PublicKeyTypes) -> bytes:
    """Return the SHA-256 digest of the SubjectPublicKeyInfo DER.

    The same canonical encoding is used for RSA and EC keys, so two
    fingerprints are comparable without knowing the algorithm.
    """
    der = pub_key.public_bytes(
        Encoding.DER,
        PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).digest()


def _key_algorithm(pub_key: PublicKeyTypes) -> tuple[KeyAlgorithm, int]:
    """Return ``(algorithm, key size in bits)`` or raise INVALID_FORMAT."""
    if isinstance(pub_key, rsa.RSAPublicKey):
        return KeyAlgorithm.RSA, pub_key.key_size
    if isinstance(pub_key, ec.EllipticCurvePublicKey):
        return KeyAlgorithm.EC, pub_key.curve.key_size
    msg = f"unsupported key type {type(pub_key).__name__}; only RSA and EC keys are supported"
    raise _invalid(msg)


def _subject_cn(cert: x509.Certificate) -> str | None:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return value


def _dns_san_entries(cert: x509.Certificate) -> tuple[str, ...]:
    """Return DNS SAN entries in certificate order, case-insensitively unique.

    IP address, e-mail and URI entries are ignored.
    """
    try:
        san_ext = cert.extensions.get_extension_for_class(
            x509.SubjectAlternativeName,
        )
    except x509.ExtensionNotFound:
        return ()

    seen: set[str] = set()
    entries: list[str] = []
    for name in san_ext.value.get_values_for_type(x509.DNSName):
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        entries.append(name)
    return tuple(entries)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_certificate(
    pem_data: bytes | str,
    source: CertificateSource = CertificateSource.UNKNOWN,
) -> CertificateRecord:
    """Decode a PEM certificate into a :class:`CertificateRecord`.

    When *pem_data* holds a chain, the first (leaf) certificate is used.

    Raises
    ------
    CertificateError
        With kind ``INVALID_FORMAT`` for any decoding problem.

    """
    raw = _as_bytes(pem_data)
    if b"-----BEGIN CERTIFICATE-----" not in raw:
        msg = "data does not contain a PEM certificate block"
        raise _invalid(msg)

    try:
        cert = x509.load_pem_x509_certificate(raw)
    except ValueError as exc:
        msg = f"malformed or truncated certificate: {exc}"
        raise _invalid(msg) from None

    try:
        sig_oid = cert.signature_algorithm_oid.dotted_string
        sig_name = _SIG_ALG_NAMES.get(sig_oid)
        if sig_name is None:
            msg = f"unsupported signature algorithm (OID {sig_oid})"
            raise _invalid(msg)

        pub_key = cert.public_key()
        algorithm, key_size = _key_algorithm(pub_key)

        record = CertificateRecord(
            subject_cn=_subject_cn(cert),
            san_entries=_dns_san_entries(cert),
            not_before=int(cert.not_valid_before_utc.timestamp()),
            not_after=int(cert.not_valid_after_utc.timestamp()),
            public_key_fingerprint=public_key_fingerprint(pub_key),
            signature_algorithm=sig_name,
            source=source,
            subject=cert.subject.rfc4514_string(),
            issuer=cert.issuer.rfc4514_string(),
            serial_number=format(cert.serial_number, "x"),
            key_algorithm=algorithm,
            key_size=key_size,
            fingerprint=hashlib.sha256(cert.public_bytes(Encoding.DER)).hexdigest(),
        )
    except CertificateError:
        raise
    except (ValueError, UnsupportedAlgorithm) as exc:
        msg = f"certificate contents could not be decoded: {exc}"
        raise _invalid(msg) from None

    log.debug(
        "Parsed certificate cn=%s san=%s serial=%s",
        record.subject_cn,
        list(record.san_entries),
        record.serial_number,
    )
    return record


def parse_private_key(pem_data: bytes | str) -> KeyMaterial:
    """Decode an unencrypted PEM RSA/EC private key into :class:`KeyMaterial`.

    Error details never include the key bytes themselves.

    Raises
    ------
    CertificateError
        With kind ``INVALID_FORMAT`` for malformed, encrypted or
        unsupported keys.

    """
    raw = _as_bytes(pem_data)
    if b"PRIVATE KEY-----" not in raw:
        msg = "data does not contain a PEM private key block"
        raise _invalid(msg)

    try:
        private_key = serialization.load_pem_private_key(raw, password=None)
    except TypeError:
        msg = "private key is encrypted; an unencrypted key is required"
        raise _invalid(msg) from None
    except (ValueError, UnsupportedAlgorithm):
        msg = "malformed, truncated or unsupported private key"
        raise _invalid(msg) from None

    pub_key = private_key.public_key()
    algorithm, key_size = _key_algorithm(pub_key)
    return KeyMaterial(
        public_key_fingerprint=public_key_fingerprint(pub_key),
        algorithm=algorithm,
        key_size=key_size,
        private_key=private_key,
    )
