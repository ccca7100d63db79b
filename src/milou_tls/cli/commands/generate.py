"""Generate subcommand: new self-signed pair, stored and re-validated."""

from __future__ import annotations

import sys
from dataclasses import replace
from typing import TYPE_CHECKING

from milou_tls.cli.commands.validate import print_result
from milou_tls.core.types import ExitCode
from milou_tls.services import SslSetupService

if TYPE_CHECKING:
    import argparse

    from milou_tls.config import TlsConfig


def run_generate(config: TlsConfig, args: argparse.Namespace) -> int:
    service = SslSetupService(config.settings)

    if not args.force and service.store.exists():
        current = service.validate_current()
        if current.usable:
            print(
                f"usable certificate already present at {service.store.cert_path}; "
                "use --force to replace it",
            )
            return ExitCode.USABLE

    params = None
    if args.days is not None:
        if args.days < 1:
            print("error: --days must be positive", file=sys.stderr)
            return ExitCode.GENERATION_FAILED
        params = replace(service.generator.defaults, validity_days=args.days)

    outcome = service.generate(args.domain, args.extra, params)
    if outcome.result is not None:
        print_result(outcome.result)
    if not outcome.ok:
        print(f"error: {outcome.message}", file=sys.stderr)
    return int(outcome.exit_code)
