"""
Logging setup for the Revision Portal.

Production writes one JSON object per line; development and tests use a short
readable line.  A filter stamps every record emitted during an HTTP request
with ``request_id`` and ``actor`` so service-layer log lines can be joined to
the request that caused them.

Service modules log with ``extra={"project_id": ..., ...}``; the keys listed in
``_EXTRA_KEYS`` are carried into the JSON output.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

_EXTRA_KEYS = (
    "request_id",
    "actor",
    "project_id",
    "modification_request_id",
    "request_number",
    "from_status",
    "additional_cost",
    "archive_id",
    "markup_id",
    "remaining",
    "event_type",
    "recipient",
    "method",
    "path",
    "status",
    "duration_ms",
)


class RequestContextFilter(logging.Filter):
    """Copy request id and acting user onto the record when inside a request."""

    def filter(self, record):
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "actor", None) is None:
                record.actor = request.headers.get("X-User") or None
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({
            key: getattr(record, key)
            for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    def format(self, record):
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} {record.levelname:<7} {record.name}: {record.getMessage()}"
        project_id = getattr(record, "project_id", None)
        if project_id is not None:
            line += f" [project={project_id}]"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f" ({request_id})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    JSON when the app is neither in DEBUG nor TESTING; level from LOG_LEVEL.
    """
    structured = not app.config.get("DEBUG") and not app.config.get("TESTING")
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()  # create_app may run more than once per process
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in ("werkzeug", "sqlalchemy.engine", "alembic", "flask_limiter"):
        logging.getLogger(name).setLevel(logging.WARNING)

    app.logger.debug("Logging configured level=%s structured=%s", level_name, structured)
