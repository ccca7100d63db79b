"""Certificate parsing, matching, expiry, generation and storage.

Each module is a single-responsibility building block; the
:class:`~milou_tls.services.validation.ValidationOrchestrator` composes
them into one validation pass.
"""

from milou_tls.ssl.domains import match_domain, match_domains
from milou_tls.ssl.expiration import ExpirationMonitor, ExpiryAssessment
from milou_tls.ssl.generator import (
    CertificateGenerator,
    GeneratedPair,
    GenerationError,
    GenerationParams,
)
from milou_tls.ssl.pairing import match_key_pair
from milou_tls.ssl.parser import parse_certificate, parse_private_key
from milou_tls.ssl.store import CertificateStore

__all__ = [
    "CertificateGenerator",
    "CertificateStore",
    "ExpirationMonitor",
    "ExpiryAssessment",
    "GeneratedPair",
    "GenerationError",
    "GenerationParams",
    "match_domain",
    "match_domains",
    "match_key_pair",
    "parse_certificate",
    "parse_private_key",
]
