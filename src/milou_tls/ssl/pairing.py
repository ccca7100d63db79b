"""Certificate / private-key correspondence check."""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from milou_tls.core.types import MatchResult

if TYPE_CHECKING:
    from milou_tls.models.certificate import CertificateRecord, KeyMaterial

log = logging.getLogger(__name__)


def match_key_pair(record: CertificateRecord, key: KeyMaterial) -> MatchResult:
    """Return ``MATCH`` when *key* is the private half of *record*'s public key.

    Both fingerprints are SHA-256 digests of the SubjectPublicKeyInfo DER,
    derived independently from the certificate and from the private key,
    so RSA and EC keys are compared the same way.  Equality of the
    fingerprints is the only criterion.
    """
    if not record.public_key_fingerprint or not key.public_key_fingerprint:
        return MatchResult.MISMATCHED_KEY
    if hmac.compare_digest(record.public_key_fingerprint, key.public_key_fingerprint):
        return MatchResult.MATCH
    log.debug(
        "Key pair mismatch: certificate %s key vs private %s key",
        record.key_algorithm,
        key.algorithm,
    )
    return MatchResult.MISMATCHED_KEY
