"""milou-tls: TLS certificate lifecycle and validation engine."""

__version__ = "1.0.0"
