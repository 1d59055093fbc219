"""JSON log output for the ``userstore`` command."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

__all__ = ["JsonLogFormatter", "configure_logging", "mask_url"]

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Extra fields holding a database URL, possibly with a password in it.
_URL_FIELDS = frozenset({"dsn", "url"})


def mask_url(value: object) -> str:
    """Render *value* as a database URL with the password replaced by ``***``."""

    try:
        return make_url(str(value)).render_as_string(hide_password=True)
    except ArgumentError:
        return "***"


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record with the record's ``extra=`` fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES:
                continue
            payload[key] = mask_url(value) if key in _URL_FIELDS else value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def configure_logging(level: int | str, *, stream: TextIO | None = None) -> logging.Handler:
    """Send every record at *level* or above to *stream* (stderr by default) as JSON.

    Replaces the handlers of the root logger and returns the installed one.
    """

    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonLogFormatter())
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    return handler
