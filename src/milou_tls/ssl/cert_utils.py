"""Shared certificate-building helpers.

Provides key-usage and extended-key-usage mappings and the SAN builder
used by the self-signed generator.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from milou_tls.core.types import KeyAlgorithm

# ---------------------------------------------------------------------------
# Key usage / EKU mappings
# ---------------------------------------------------------------------------

# RSA server keys encipher the pre-master secret; EC keys only sign.
_KEY_USAGES: dict[KeyAlgorithm, tuple[str, ...]] = {
    KeyAlgorithm.RSA: ("digital_signature", "key_encipherment"),
    KeyAlgorithm.EC: ("digital_signature",),
}

_EKU_OIDS = {
    "server_auth": ExtendedKeyUsageOID.SERVER_AUTH,
    "client_auth": ExtendedKeyUsageOID.CLIENT_AUTH,
}

LOCALHOST_NAMES: tuple[str, ...] = ("localhost", "*.localhost")
LOCALHOST_IPS: tuple[str, ...] = ("127.0.0.1", "::1")


def build_key_usage(algorithm: KeyAlgorithm) -> x509.KeyUsage:
    """Build an :class:`x509.KeyUsage` extension for a TLS server key."""
    usage_set = set(_KEY_USAGES[algorithm])
    return x509.KeyUsage(
        digital_signature="digital_signature" in usage_set,
        content_commitment=False,
        key_encipherment="key_encipherment" in usage_set,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=False,
        crl_sign=False,
        encipher_only=False,
        decipher_only=False,
    )


def build_eku(ekus: tuple[str, ...] = ("server_auth",)) -> x509.ExtendedKeyUsage:
    """Build an :class:`x509.ExtendedKeyUsage` extension from names."""
    oids = []
    for name in ekus:
        oid = _EKU_OIDS.get(name)
        if oid is None:
            msg = f"Unknown extended key usage '{name}'; supported: {sorted(_EKU_OIDS)}"
            raise ValueError(msg)
        oids.append(oid)
    return x509.ExtendedKeyUsage(oids)


def ordered_domains(primary: str, additional: Iterable[str] = ()) -> list[str]:
    """Return *primary* then *additional*, case-insensitively de-duplicated."""
    seen: set[str] = set()
    result: list[str] = []
    for name in (primary, *additional):
        name = name.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        result.append(name)
    return result


def build_san(
    domains: Iterable[str],
    ip_addresses: Iterable[str] = (),
) -> x509.SubjectAlternativeName:
    """Build a SAN extension with DNS entries verbatim, then IP entries."""
    general_names: list[x509.GeneralName] = [x509.DNSName(name) for name in domains]
    general_names.extend(
        x509.IPAddress(ipaddress.ip_address(addr)) for addr in ip_addresses
    )
    return x509.SubjectAlternativeName(general_names)
