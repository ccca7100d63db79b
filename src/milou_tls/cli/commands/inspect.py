"""Inspect subcommand: print the parsed details of the live certificate.

Usage::

    milou-tls -c tls.yaml inspect
    milou-tls -c tls.yaml inspect --json
"""

from __future__ import annotations

import json
import sys
from typing import TYPE_CHECKING

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import ExitCode
from milou_tls.services import source_from_info
from milou_tls.ssl import CertificateStore, parse_certificate

if TYPE_CHECKING:
    import argparse

    from milou_tls.config import TlsConfig


def run_inspect(config: TlsConfig, args: argparse.Namespace) -> int:
    store = CertificateStore.from_settings(config.settings.ssl)

    try:
        pem = store.read_certificate()
        if pem is None:
            print(f"error: no certificate at {store.cert_path}", file=sys.stderr)
            return ExitCode.VALIDATION_FAILED
        record = parse_certificate(pem, source=source_from_info(store.load_info()))
    except CertificateError as exc:
        print(f"error: {exc.kind.value}: {exc.detail}", file=sys.stderr)
        return ExitCode.VALIDATION_FAILED

    if args.json:
        print(json.dumps(record.to_dict(), indent=2))
        return ExitCode.USABLE

    algorithm = record.key_algorithm.value if record.key_algorithm else "?"
    rows = [
        ("File", str(store.cert_path)),
        ("Subject", record.subject),
        ("Issuer", record.issuer),
        ("Serial", record.serial_number),
        ("Key", f"{algorithm} {record.key_size or '?'}-bit"),
        ("Signature", record.signature_algorithm),
        ("Valid from", record.not_before_dt.isoformat()),
        ("Valid until", record.not_after_dt.isoformat()),
        ("Names", ", ".join(record.san_entries) or "(none)"),
        ("Self-signed", "yes" if record.is_self_signed else "no"),
        ("Source", record.source.value),
        ("SHA-256", record.fingerprint),
    ]
    width = max(len(label) for label, _ in rows)
    for label, value in rows:
        print(f"{label.ljust(width)}  {value}")
    return ExitCode.USABLE
