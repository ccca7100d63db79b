"""Command-line interface for milou-tls."""
