"""Enumerated types for the milou-tls certificate engine.

All enums inherit from ``StrEnum`` so their ``.value`` is a plain
string that JSON output and the metadata file round-trip naturally.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationStatus(StrEnum):
    OK = "OK"
    EXPIRING_SOON = "EXPIRING_SOON"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"
    MISMATCHED_KEY = "MISMATCHED_KEY"
    EXPIRED = "EXPIRED"
    INVALID_FORMAT = "INVALID_FORMAT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    MISSING = "MISSING"


# Higher rank wins when several findings are aggregated.
STATUS_SEVERITY: dict[ValidationStatus, int] = {
    ValidationStatus.OK: 0,
    ValidationStatus.EXPIRING_SOON: 1,
    ValidationStatus.DOMAIN_MISMATCH: 2,
    ValidationStatus.MISMATCHED_KEY: 3,
    ValidationStatus.EXPIRED: 4,
    ValidationStatus.INVALID_FORMAT: 5,
    ValidationStatus.PERMISSION_DENIED: 5,
    ValidationStatus.MISSING: 5,
}

USABLE_STATUSES = frozenset({ValidationStatus.OK, ValidationStatus.EXPIRING_SOON})


class ValidationPolicy(StrEnum):
    STRICT = "strict"
    LENIENT = "lenient"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineState(StrEnum):
    PENDING = "PENDING"
    LOADED = "LOADED"
    PARSED = "PARSED"
    KEY_CHECKED = "KEY_CHECKED"
    DOMAIN_CHECKED = "DOMAIN_CHECKED"
    EXPIRY_CHECKED = "EXPIRY_CHECKED"
    DONE = "DONE"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Component results
# ---------------------------------------------------------------------------


class MatchResult(StrEnum):
    MATCH = "MATCH"
    MISMATCHED_KEY = "MISMATCHED_KEY"


class DomainMatch(StrEnum):
    OK = "OK"
    DOMAIN_MISMATCH = "DOMAIN_MISMATCH"


class ExpiryState(StrEnum):
    OK = "OK"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


# ---------------------------------------------------------------------------
# Certificate material
# ---------------------------------------------------------------------------


class CertificateSource(StrEnum):
    GENERATED = "generated"
    OPERATOR_SUPPLIED = "operator_supplied"
    UNKNOWN = "unknown"


class KeyAlgorithm(StrEnum):
    RSA = "RSA"
    EC = "EC"


# ---------------------------------------------------------------------------
# Setup workflow
# ---------------------------------------------------------------------------


class SslMode(StrEnum):
    GENERATE = "generate"
    EXISTING = "existing"
    NONE = "none"
    AUTO = "auto"


class SetupAction(StrEnum):
    PRESERVED = "preserved"
    GENERATED = "generated"
    IMPORTED = "existing"
    DISABLED = "disabled"


# ---------------------------------------------------------------------------
# Process exit codes consumed by the surrounding deployment CLI
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    USABLE = 0
    VALIDATION_FAILED = 1
    GENERATION_FAILED = 2
