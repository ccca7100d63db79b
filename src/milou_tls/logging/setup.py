"""Logging configuration for milou-tls.

Provides JSON and text formatters, a redaction filter that scrubs PEM
bodies out of every record, and a one-call ``configure_logging``
function driven by config settings.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from milou_tls.logging.sanitize import sanitize_for_logs

if TYPE_CHECKING:
    from milou_tls.config.settings import LoggingSettings

LOGGER_NAME = "milou_tls"

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for machine consumption.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        # Caller-supplied extra fields
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        for key, value in sanitize_for_logs(extras).items():
            data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for console use."""

    _FMT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class RedactionFilter(logging.Filter):
    """Redact PEM bodies and secret fields from every log record.

    Runs over the message template and its arguments, so a PEM string
    passed as ``%s`` argument is scrubbed before formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, (str, bytes)):
            record.msg = sanitize_for_logs(record.msg)
        if isinstance(record.args, dict):
            record.args = sanitize_for_logs(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(sanitize_for_logs(arg) for arg in record.args)
        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``milou_tls`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output on
    stderr.  Returns the root ``milou_tls`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(RedactionFilter())
    root.addHandler(console)

    # cryptography does not log, but PyYAML and jsonschema callers might
    for lib in ("yaml", "jsonschema"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
