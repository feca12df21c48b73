"""
Logging setup for the portal.

Every record may carry workflow fields passed through ``extra=``
(project_id, phase_key, requirement_id, event_type, event_id) and HTTP
fields added by the timing middleware. A filter stamps the current request
id on records emitted inside a request, so service logs line up with the
request log line.

Output:
    readable  coloured single line, workflow scope in brackets (dev / tests)
    json      one object per line for log shipping (production)

Environment:
    LOG_LEVEL   DEBUG / INFO / WARNING ... (default DEBUG, INFO in production)
    LOG_FORMAT  "json" or "readable" to override the per-environment default
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

WORKFLOW_FIELDS = ("project_id", "phase_key", "requirement_id", "event_type", "event_id")
HTTP_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

_LEVEL_COLOURS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"

# Third-party loggers kept at WARNING
_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def _fields(record, names):
    return {name: getattr(record, name) for name in names if getattr(record, name, None) is not None}


class RequestIdFilter(logging.Filter):
    """Copy ``g.request_id`` onto records that don't already carry one."""

    def filter(self, record):
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        workflow = _fields(record, WORKFLOW_FIELDS)
        if workflow:
            entry["workflow"] = workflow
        entry.update(_fields(record, HTTP_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  studio_portal.services.phase_engine [project=7 phase=IDEA] msg (12ms)``"""

    _SCOPE_LABELS = (("project_id", "project"), ("phase_key", "phase"), ("requirement_id", "req"))

    def format(self, record):
        colour = _LEVEL_COLOURS.get(record.levelno, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        scope = " ".join(
            f"{label}={getattr(record, attr)}"
            for attr, label in self._SCOPE_LABELS
            if getattr(record, attr, None) is not None
        )
        line = f"{colour}{stamp} {record.levelname:<7}{_RESET} {record.name}"
        if scope:
            line += f" [{scope}]"
        line += f" {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(app):
    forced = os.getenv("LOG_FORMAT", "").strip().lower()
    if forced in ("json", "readable"):
        return forced == "json"
    return not (app.debug or app.testing)


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    use_json = _wants_json(app)
    level_name = os.getenv("LOG_LEVEL", "INFO" if use_json else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.addFilter(RequestIdFilter())

    # create_app runs many times in a test session; replace rather than stack handlers
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.testing:
        app.logger.info("Logging ready (level=%s, format=%s)", level_name, "json" if use_json else "readable")
