"""Configuration subsystem for milou-tls.

Public API::

    from milou_tls.config import TlsConfig

    config = TlsConfig(config_file="tls.yaml")
    warn = config.settings.expiry.warn_days    # typed access
    mode = config.get("ssl.mode")              # dynamic dot-path
"""

from milou_tls.config.settings import (
    ExpirySettings,
    GenerationSettings,
    LoggingSettings,
    SslSettings,
    TlsSettings,
    build_settings,
)
from milou_tls.config.tls_config import ConfigValidationError, TlsConfig

__all__ = [
    "ConfigValidationError",
    "ExpirySettings",
    "GenerationSettings",
    "LoggingSettings",
    "SslSettings",
    "TlsConfig",
    "TlsSettings",
    "build_settings",
]
