"""Root conftest for the milou-tls test suite."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)


# ---------------------------------------------------------------------------
# Real crypto material (keys are session-scoped: RSA generation is slow)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def key_to_pem(key) -> bytes:
    """PKCS#8 PEM, unencrypted."""
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def build_cert_pem(
    key,
    *,
    cn: str | None = "example.com",
    san: Sequence[str] = ("example.com",),
    not_before: datetime | None = None,
    not_after: datetime | None = None,
) -> bytes:
    """Self-sign a leaf certificate for *key* and return it as PEM."""
    now = datetime.now(UTC).replace(microsecond=0)
    not_before = not_before or now - timedelta(days=1)
    not_after = not_after or now + timedelta(days=365)

    attrs = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test")]
    if cn:
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, cn))
    name = x509.Name(attrs)

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    if san:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in san]),
            critical=False,
        )
    return builder.sign(key, hashes.SHA256()).public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def make_cert(rsa_key) -> Callable[..., bytes]:
    """Factory: ``make_cert(key=None, cn=..., san=..., not_before=..., not_after=...)``."""

    def _make(key=None, **kwargs) -> bytes:
        return build_cert_pem(key or rsa_key, **kwargs)

    return _make


@pytest.fixture
def pem_of() -> Callable[..., bytes]:
    """``pem_of(key)`` -> PKCS#8 PEM bytes."""
    return key_to_pem


@pytest.fixture
def rsa_key_pem(rsa_key) -> bytes:
    return key_to_pem(rsa_key)


# ---------------------------------------------------------------------------
# Config data shared by multiple test modules
# ---------------------------------------------------------------------------


@pytest.fixture()
def minimal_config_data(tmp_path: Path) -> dict:
    """Config pointing the store at a temp directory."""
    return {
        "ssl": {
            "mode": "auto",
            "base_dir": str(tmp_path / "ssl"),
            "domain": "example.com",
            "additional_domains": ["*.example.com"],
        },
        "expiry": {"warn_days": 30, "critical_days": 7},
        "generation": {"retry_delay_seconds": 0},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, minimal_config_data: dict) -> Path:
    """Write *minimal_config_data* to a temp YAML file and return its path."""
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(minimal_config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture(autouse=True)
def clean_ssl_env(monkeypatch):
    """Keep the deployment .env overlay from leaking into tests."""
    for var in (
        "SSL_MODE",
        "SSL_CERT_PATH",
        "SSL_KEY_PATH",
        "SSL_BASE_DIR",
        "DOMAIN",
        "SSL_ADDITIONAL_DOMAINS",
        "SSL_POLICY",
        "SSL_WARN_DAYS",
        "SSL_CRITICAL_DAYS",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo ``configure_logging`` so caplog sees records in later tests."""
    yield
    logger = logging.getLogger("milou_tls")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
