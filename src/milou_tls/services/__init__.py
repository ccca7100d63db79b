"""Certificate workflow services.

Each service composes the components in :mod:`milou_tls.ssl` into one
operation the surrounding deployment workflow can call.
"""

from milou_tls.services.setup import SetupOutcome, SslSetupService, source_from_info
from milou_tls.services.validation import ValidationOrchestrator, should_reload_proxy

__all__ = [
    "SetupOutcome",
    "SslSetupService",
    "ValidationOrchestrator",
    "should_reload_proxy",
    "source_from_info",
]
