"""Validate subcommand: one orchestration pass over the live pair.

Usage::

    milou-tls -c tls.yaml validate
    milou-tls -c tls.yaml validate --domain a.example.com --domain b.example.com --json
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING

from milou_tls.services import SslSetupService

if TYPE_CHECKING:
    import argparse

    from milou_tls.config import TlsConfig
    from milou_tls.models.validation import ValidationResult


def print_result(result: ValidationResult, *, as_json: bool = False) -> None:
    """Status summary to stdout, one line per issue to stderr."""
    if as_json:
        print(json.dumps(result.to_dict(), indent=2))
        return

    line = f"{result.status.value}"
    if result.days_remaining is not None:
        line += f" ({result.days_remaining} day(s) remaining)"
    if result.checked_domains:
        line += f" for {', '.join(result.checked_domains)}"
    print(line)
    for issue in result.issues:
        print(f"  {issue}", file=sys.stderr)


def run_validate(config: TlsConfig, args: argparse.Namespace) -> int:
    service = SslSetupService(config.settings)
    result = service.validate_current(args.domain or None)
    print_result(result, as_json=args.json)
    return int(result.exit_code)
