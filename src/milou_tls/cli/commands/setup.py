"""Setup subcommand: run the ``SSL_MODE`` workflow."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from milou_tls.cli.commands.validate import print_result
from milou_tls.core.types import SslMode
from milou_tls.services import SslSetupService

if TYPE_CHECKING:
    import argparse

    from milou_tls.config import TlsConfig


def run_setup(config: TlsConfig, args: argparse.Namespace) -> int:
    service = SslSetupService(config.settings)
    mode = SslMode(args.mode) if args.mode else None

    outcome = service.run(
        mode,
        force=args.force,
        import_cert=args.cert,
        import_key=args.key,
    )

    if outcome.result is not None:
        print_result(outcome.result)
    stream = sys.stdout if outcome.ok else sys.stderr
    print(outcome.message, file=stream)
    return int(outcome.exit_code)
