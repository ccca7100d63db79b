"""Classified failures raised by the certificate engine.

Every parsing or IO failure is converted into a :class:`CertificateError`
at the point where it happens, carrying one of the named
:class:`~milou_tls.core.types.ValidationStatus` kinds.  Callers never
have to inspect a raw ``OSError`` or ``ValueError``.

Messages are built from paths and metadata only; key bytes and PEM
bodies must never be interpolated into ``detail``.
"""

from __future__ import annotations

from milou_tls.core.types import ValidationStatus


class CertificateError(Exception):
    """Raised when certificate or key material cannot be used.

    Parameters
    ----------
    kind:
        The classified failure (``INVALID_FORMAT``, ``PERMISSION_DENIED``,
        ``MISSING`` ...).
    detail:
        Human-readable description of the failure.

    """

    def __init__(self, kind: ValidationStatus, detail: str) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(detail)

    def __repr__(self) -> str:
        return f"CertificateError({self.kind.value}, {self.detail!r})"
