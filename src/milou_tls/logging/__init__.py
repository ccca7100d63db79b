"""Logging subsystem for milou-tls.

Public API::

    from milou_tls.logging import configure_logging

    configure_logging(settings.logging)
"""

from milou_tls.logging.setup import configure_logging

__all__ = ["configure_logging"]
