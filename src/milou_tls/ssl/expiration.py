"""Certificate expiry classification.

All arithmetic is done on epoch seconds (see :mod:`milou_tls.ssl.parser`);
no locale or platform date parsing is involved.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from milou_tls.core.types import ExpiryState

if TYPE_CHECKING:
    from milou_tls.config.settings import ExpirySettings

log = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ExpiryAssessment:
    """Remaining validity of one certificate at one instant.

    ``remaining_seconds`` is negative once the certificate has expired.
    ``days_remaining`` is floored, so a certificate with 36 hours left
    reports 1 day and one that expired 12 hours ago reports -1.
    """

    state: ExpiryState
    remaining_seconds: int
    critical: bool

    @property
    def days_remaining(self) -> int:
        return self.remaining_seconds // SECONDS_PER_DAY


class ExpirationMonitor:
    """Classify ``not_after`` against the configured thresholds."""

    def __init__(
        self,
        warn_days: int = 30,
        critical_days: int = 7,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if warn_days < 0 or critical_days < 0:
            msg = "expiry thresholds must not be negative"
            raise ValueError(msg)
        self._warn_seconds = warn_days * SECONDS_PER_DAY
        self._critical_seconds = critical_days * SECONDS_PER_DAY
        self._clock = clock
        self.warn_days = warn_days
        self.critical_days = critical_days

    @classmethod
    def from_settings(
        cls,
        settings: ExpirySettings,
        clock: Callable[[], float] = time.time,
    ) -> ExpirationMonitor:
        return cls(
            warn_days=settings.warn_days,
            critical_days=settings.critical_days,
            clock=clock,
        )

    def now(self) -> int:
        return int(self._clock())

    def assess(self, not_after: int, now: int | None = None) -> ExpiryAssessment:
        """Return the expiry state of a certificate ending at *not_after*."""
        if now is None:
            now = self.now()
        remaining = not_after - now

        if remaining <= 0:
            state = ExpiryState.EXPIRED
        elif remaining < self._warn_seconds:
            state = ExpiryState.EXPIRING_SOON
        else:
            state = ExpiryState.OK

        critical = remaining < self._critical_seconds
        return ExpiryAssessment(state=state, remaining_seconds=remaining, critical=critical)
