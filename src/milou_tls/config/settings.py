"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from milou_tls.config import TlsConfig

    settings = TlsConfig(config_file="milou-tls.yaml").settings
    print(settings.expiry.warn_days, settings.ssl.cert_file)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from milou_tls.core.types import SslMode, ValidationPolicy

# ---------------------------------------------------------------------------
# SSL
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SslSettings:
    """Where the live pair lives and which names it must serve."""

    mode: SslMode
    base_dir: str
    name: str
    cert_path: str | None
    key_path: str | None
    domain: str
    additional_domains: tuple[str, ...]
    policy: ValidationPolicy

    @property
    def cert_file(self) -> Path:
        if self.cert_path:
            return Path(self.cert_path)
        return Path(self.base_dir) / f"{self.name}.crt"

    @property
    def key_file(self) -> Path:
        if self.key_path:
            return Path(self.key_path)
        return Path(self.base_dir) / f"{self.name}.key"

    @property
    def domains(self) -> tuple[str, ...]:
        """Primary domain followed by additional domains, de-duplicated."""
        seen: set[str] = set()
        ordered: list[str] = []
        for name in (self.domain, *self.additional_domains):
            if name and name.lower() not in seen:
                seen.add(name.lower())
                ordered.append(name)
        return tuple(ordered)


def _build_ssl(data: dict | None) -> SslSettings:
    d = data or {}
    return SslSettings(
        mode=SslMode(d.get("mode", "auto")),
        base_dir=d.get("base_dir", "./ssl"),
        name=d.get("name", "milou"),
        cert_path=d.get("cert_path") or None,
        key_path=d.get("key_path") or None,
        domain=d.get("domain", "localhost"),
        additional_domains=tuple(d.get("additional_domains", [])),
        policy=ValidationPolicy(d.get("policy", "lenient")),
    )


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpirySettings:
    """Expiry thresholds in days."""

    warn_days: int
    critical_days: int


def _build_expiry(data: dict | None) -> ExpirySettings:
    d = data or {}
    return ExpirySettings(
        warn_days=d.get("warn_days", 30),
        critical_days=d.get("critical_days", 7),
    )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationSettings:
    """Self-signed certificate generation parameters and retry policy."""

    key_algorithm: str
    rsa_key_size: int
    ec_curve: str
    validity_days: int
    max_attempts: int
    retry_delay_seconds: float
    include_localhost: bool


def _build_generation(data: dict | None) -> GenerationSettings:
    d = data or {}
    return GenerationSettings(
        key_algorithm=d.get("key_algorithm", "rsa"),
        rsa_key_size=d.get("rsa_key_size", 2048),
        ec_curve=d.get("ec_curve", "secp256r1"),
        validity_days=d.get("validity_days", 365),
        max_attempts=d.get("max_attempts", 3),
        retry_delay_seconds=float(d.get("retry_delay_seconds", 0.5)),
        include_localhost=d.get("include_localhost", False),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TlsSettings:
    ssl: SslSettings
    expiry: ExpirySettings
    generation: GenerationSettings
    logging: LoggingSettings


def build_settings(data: dict | None) -> TlsSettings:
    """Materialise the typed settings tree from a raw config dict."""
    d = data or {}
    return TlsSettings(
        ssl=_build_ssl(d.get("ssl")),
        expiry=_build_expiry(d.get("expiry")),
        generation=_build_generation(d.get("generation")),
        logging=_build_logging(d.get("logging")),
    )
