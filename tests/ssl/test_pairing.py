"""Unit tests for milou_tls.ssl.pairing."""

from __future__ import annotations

from milou_tls.core.types import KeyAlgorithm, MatchResult
from milou_tls.models.certificate import KeyMaterial
from milou_tls.ssl.pairing import match_key_pair
from milou_tls.ssl.parser import parse_certificate, parse_private_key


class TestMatchKeyPair:
    def test_rsa_pair_matches(self, make_cert, rsa_key_pem):
        record = parse_certificate(make_cert())
        assert match_key_pair(record, parse_private_key(rsa_key_pem)) is MatchResult.MATCH

    def test_ec_pair_matches(self, make_cert, ec_key, pem_of):
        record = parse_certificate(make_cert(ec_key))
        assert match_key_pair(record, parse_private_key(pem_of(ec_key))) is MatchResult.MATCH

    def test_unrelated_same_algorithm_key(self, make_cert, other_rsa_key, pem_of):
        record = parse_certificate(make_cert())
        key = parse_private_key(pem_of(other_rsa_key))
        assert match_key_pair(record, key) is MatchResult.MISMATCHED_KEY

    def test_different_algorithm_key(self, make_cert, ec_key, pem_of):
        record = parse_certificate(make_cert())
        key = parse_private_key(pem_of(ec_key))
        assert match_key_pair(record, key) is MatchResult.MISMATCHED_KEY

    def test_empty_fingerprint_never_matches(self, make_cert):
        record = parse_certificate(make_cert())
        key = KeyMaterial(public_key_fingerprint=b"", algorithm=KeyAlgorithm.RSA, key_size=2048)
        assert match_key_pair(record, key) is MatchResult.MISMATCHED_KEY
