"""Backup subcommand."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from milou_tls.core.errors import CertificateError
from milou_tls.core.types import ExitCode
from milou_tls.ssl import CertificateStore

if TYPE_CHECKING:
    import argparse

    from milou_tls.config import TlsConfig


def run_backup(config: TlsConfig, args: argparse.Namespace) -> int:  # noqa: ARG001
    store = CertificateStore.from_settings(config.settings.ssl)
    try:
        created = store.backup()
    except CertificateError as exc:
        print(f"error: {exc.detail}", file=sys.stderr)
        return ExitCode.VALIDATION_FAILED

    if not created:
        print(f"nothing to back up in {store.cert_path.parent}")
    for path in created:
        print(path)
    return ExitCode.USABLE
