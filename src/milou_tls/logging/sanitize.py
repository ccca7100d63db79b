"""Sensitive data sanitization for log output.

Provides :func:`sanitize_for_logs` which redacts key material (PEM
bodies, private-key fields in mappings) from data structures before
they reach a handler.  BEGIN/END markers and other metadata survive so
the log still says *what* was involved.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# Mapping keys whose values are secret regardless of their content
_SECRET_FIELDS = frozenset({"key_pem", "private_key", "passphrase", "password"})

# Regex matching the base64 body inside PEM blocks
_PEM_BODY_RE = re.compile(
    r"(-----BEGIN [A-Z0-9 ]+-----)"
    r"([\s\S]*?)"
    r"(-----END [A-Z0-9 ]+-----)",
)


def sanitize_pem(pem: str) -> str:
    """Replace the base64 body of PEM blocks with ``[REDACTED]``.

    Preserves BEGIN/END markers so the type of object is still visible.
    """

    def _redact(m: re.Match) -> str:
        return f"{m.group(1)}\n{REDACTED}\n{m.group(3)}"

    return _PEM_BODY_RE.sub(_redact, pem)


def sanitize_for_logs(data: Any) -> Any:  # noqa: ANN401
    """Recursively sanitize sensitive material in *data*.

    Handles dicts, lists, tuples, plain strings and bytes.  Non-sensitive
    data passes through unchanged.
    """
    if isinstance(data, dict):
        return {
            k: REDACTED if k in _SECRET_FIELDS else sanitize_for_logs(v)
            for k, v in data.items()
        }

    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_for_logs(item) for item in data)

    if isinstance(data, bytes):
        if b"-----BEGIN " in data:
            return sanitize_pem(data.decode("ascii", errors="replace"))
        return data

    if isinstance(data, str):
        if "-----BEGIN " in data:
            return sanitize_pem(data)
        return data

    return data
