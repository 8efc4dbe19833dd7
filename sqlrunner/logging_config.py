"""Logging setup for the engine and the command line interface.

Two output styles are supported: the default human-readable text format
and a single-line JSON format intended for log aggregators.  Statement
execution records (``Executed: ...``) are emitted on the dedicated
``sqlrunner.statements`` logger so they can be routed separately.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

STATEMENT_LOGGER = "sqlrunner.statements"

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection_id = getattr(record, "connection_id", None)
        if connection_id:
            payload["connection_id"] = connection_id

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            payload["duration_ms"] = duration_ms

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", structured: bool = False) -> None:
    """Replace the root handlers with a single stream handler.

    Parameters
    ----------
    level:
        Name of the root log level (``DEBUG``, ``INFO``, ...).
    structured:
        When ``True``, records are written as JSON lines via
        :class:`JSONFormatter`.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
