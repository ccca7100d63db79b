"""Entity models for the certificate engine.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from milou_tls.models.certificate import CertificateRecord, KeyMaterial
from milou_tls.models.validation import ValidationIssue, ValidationResult, most_severe

__all__ = [
    "CertificateRecord",
    "KeyMaterial",
    "ValidationIssue",
    "ValidationResult",
    "most_severe",
]
