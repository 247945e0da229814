"""
MCT API — Structured JSON Logging
===================================

What:  One JSON object per log record, with structured fields lifted from
       the ``extra`` dict of each logging call.
Why:   Log aggregation tools index each field (method, path, status,
       duration_ms, client_ip...) without regex parsing.
When:  setup_logging() runs first thing in the application lifespan.

Example:
    logger.info("request completed", extra={"status": 200, "path": "/health"})
    → {"timestamp": "...", "level": "INFO", "logger": "mct_api.access",
       "message": "request completed", "status": 200, "path": "/health"}
"""

import json
import logging
import sys
from datetime import datetime, timezone

from mct_api.config import Settings

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(settings: Settings) -> None:
    """
    Configure the root logger with JSON output on stdout.

    ENV=development → DEBUG, anything else → INFO.
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    # uvicorn's access log duplicates RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
