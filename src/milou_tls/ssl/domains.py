"""Hostname coverage checks against a certificate's name set.

Matching rules:

- exact names compare case-insensitively; a trailing dot on the
  requested name is ignored;
- ``*.<suffix>`` covers exactly one extra, non-empty label in front of
  ``<suffix>`` (``*.example.com`` covers ``app.example.com`` but neither
  ``example.com`` nor ``a.b.example.com``);
- a requested wildcard (``*.example.com``) is covered only by the
  identical wildcard entry;
- when the SAN list is non-empty it is authoritative and the subject CN
  is ignored; the CN is only consulted when there are no SAN entries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from milou_tls.core.types import DomainMatch

log = logging.getLogger(__name__)


def _normalise(name: str) -> str:
    return name.strip().rstrip(".").lower()


def name_covers(pattern: str, domain: str) -> bool:
    """Return ``True`` when certificate name *pattern* covers *domain*."""
    pattern = _normalise(pattern)
    domain = _normalise(domain)
    if not pattern or not domain:
        return False

    if not pattern.startswith("*.") or domain.startswith("*."):
        # A requested wildcard is only covered by the same wildcard entry.
        return pattern == domain

    suffix = pattern[2:]
    if not suffix or "*" in suffix:
        return False
    label, sep, rest = domain.partition(".")
    if not sep or not label or label == "*":
        return False
    return rest == suffix


def match_domain(
    domain: str,
    subject_cn: str | None,
    san_entries: Iterable[str],
) -> DomainMatch:
    """Decide whether *domain* is covered by a certificate's names."""
    sans = tuple(san_entries)
    candidates = sans if sans else ((subject_cn,) if subject_cn else ())
    for name in candidates:
        if name_covers(name, domain):
            return DomainMatch.OK
    return DomainMatch.DOMAIN_MISMATCH


def match_domains(
    domains: Iterable[str],
    subject_cn: str | None,
    san_entries: Iterable[str],
) -> dict[str, DomainMatch]:
    """Check every requested domain independently, preserving input order."""
    sans = tuple(san_entries)
    results: dict[str, DomainMatch] = {}
    for domain in domains:
        results[domain] = match_domain(domain, subject_cn, sans)
    return results


def aggregate(results: dict[str, DomainMatch]) -> DomainMatch:
    """``DOMAIN_MISMATCH`` if any single requested domain failed."""
    if any(result is DomainMatch.DOMAIN_MISMATCH for result in results.values()):
        return DomainMatch.DOMAIN_MISMATCH
    return DomainMatch.OK
