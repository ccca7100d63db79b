"""milou-tls command-line entry point.

Usage::

    milou-tls -c tls.yaml validate
    milou-tls -c tls.yaml validate --domain app.example.com --json
    milou-tls -c tls.yaml generate --domain example.com --extra '*.example.com'
    milou-tls -c tls.yaml setup --mode auto
    milou-tls -c tls.yaml inspect
    milou-tls backup
    python -m milou_tls -c tls.yaml validate

Exit codes: ``0`` usable, ``1`` validation failure, ``2`` generation failure.
"""

from __future__ import annotations

import argparse
import logging
import sys

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import ExitCode, SslMode

log = logging.getLogger(__name__)


def _get_version() -> str:
    from milou_tls import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="milou-tls",
        description="milou-tls: TLS certificate validation and self-signed generation",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON). "
        "Without one, defaults plus SSL_* environment variables are used.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate
    validate = subparsers.add_parser("validate", help="Validate the live certificate pair")
    validate.add_argument(
        "--domain",
        action="append",
        metavar="NAME",
        help="Domain the certificate must cover (repeatable; defaults to configured domains)",
    )
    validate.add_argument("--json", action="store_true", default=False, help="JSON output")

    # generate
    generate = subparsers.add_parser("generate", help="Generate a self-signed pair")
    generate.add_argument("--domain", metavar="NAME", help="Primary domain (CN)")
    generate.add_argument(
        "--extra",
        action="append",
        metavar="NAME",
        help="Additional SAN entry (repeatable)",
    )
    generate.add_argument("--days", type=int, metavar="N", help="Validity period in days")
    generate.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Replace the live pair even if it is still usable",
    )

    # setup
    setup = subparsers.add_parser("setup", help="Run the SSL_MODE setup workflow")
    setup.add_argument(
        "--mode",
        choices=[m.value for m in SslMode],
        help="Override ssl.mode / SSL_MODE",
    )
    setup.add_argument("--force", action="store_true", default=False)
    setup.add_argument("--cert", metavar="PATH", help="Certificate to import (mode existing)")
    setup.add_argument("--key", metavar="PATH", help="Private key to import (mode existing)")

    # inspect
    inspect = subparsers.add_parser("inspect", help="Show details of the live certificate")
    inspect.add_argument("--json", action="store_true", default=False, help="JSON output")

    # backup
    subparsers.add_parser("backup", help="Back up the live pair with a timestamp")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"error: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, runs the command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    from milou_tls.config import ConfigValidationError, TlsConfig

    try:
        config = TlsConfig(config_file=args.config)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(ExitCode.VALIDATION_FAILED)

    # -- replace bootstrap logging with configured logging ---
    from milou_tls.logging import configure_logging

    logging_settings = config.settings.logging
    if args.debug:
        from dataclasses import replace

        logging_settings = replace(logging_settings, level="DEBUG")
    configure_logging(logging_settings)

    # -- dispatch subcommand ---
    command = args.command
    try:
        if command == "validate":
            from milou_tls.cli.commands.validate import run_validate

            code = run_validate(config, args)
        elif command == "generate":
            from milou_tls.cli.commands.generate import run_generate

            code = run_generate(config, args)
        elif command == "setup":
            from milou_tls.cli.commands.setup import run_setup

            code = run_setup(config, args)
        elif command == "inspect":
            from milou_tls.cli.commands.inspect import run_inspect

            code = run_inspect(config, args)
        else:
            from milou_tls.cli.commands.backup import run_backup

            code = run_backup(config, args)
    except CertificateError as exc:
        if args.debug:
            raise
        _print_error(f"{exc.kind.value}: {exc.detail}")
        code = ExitCode.VALIDATION_FAILED
    except ValueError as exc:
        if args.debug:
            raise
        _print_error(str(exc))
        code = ExitCode.VALIDATION_FAILED

    sys.exit(int(code))
