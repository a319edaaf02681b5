from __future__ import annotations

import json
import logging
import os
import re
from datetime import UTC, datetime

from flask import g, has_request_context, request

LOG_FORMAT = (os.environ.get("FOLIO_LOG_FORMAT", "json") or "json").strip().lower()
LOG_LEVEL = (os.environ.get("FOLIO_LOG_LEVEL", "INFO") or "INFO").strip().upper()
REQUEST_ID_HEADER = (
    os.environ.get("FOLIO_REQUEST_ID_HEADER", "X-Request-ID") or "X-Request-ID"
).strip()
REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{8,128}$")

CONTEXT_FIELDS = ("request_id", "caller_id", "remote_addr", "method", "path")
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"


def _request_context() -> dict:
    if not has_request_context():
        return {}
    return {
        "request_id": getattr(g, "request_id", None),
        "caller_id": getattr(g, "caller_id", None),
        "remote_addr": request.headers.get("X-Real-IP") or request.remote_addr,
        "method": request.method,
        "path": request.path,
    }


class RequestContextFilter(logging.Filter):
    """Stamps every record with the current request's context (or None)."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context()
        for name in CONTEXT_FIELDS:
            setattr(record, name, context.get(name))
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def _build_formatter() -> logging.Formatter:
    if LOG_FORMAT == "json":
        return JsonFormatter()
    return logging.Formatter(PLAIN_FORMAT)


def configure_logging(app) -> None:
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())

    formatter = _build_formatter()
    for handler in root.handlers:
        handler.setFormatter(formatter)
        # create_app can run more than once per process (tests, reloader).
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(RequestContextFilter())

    root.setLevel(LOG_LEVEL)
    app.logger.handlers = root.handlers
    app.logger.setLevel(LOG_LEVEL)
    app.logger.propagate = False
