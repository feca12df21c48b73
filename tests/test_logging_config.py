"""
Logging formatters, request-id filter and the api_error helper.
"""

import json
import logging

from studio_portal.middleware.logging_config import (
    JSONFormatter,
    ReadableFormatter,
    RequestIdFilter,
    _wants_json,
)
from studio_portal.utils.errors import E, api_error


def _record(msg="Project advanced", level=logging.INFO, **extra):
    record = logging.LogRecord("studio_portal.test", level, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ═════════════════════════════════════════════════════════════════════════════
# Formatters
# ═════════════════════════════════════════════════════════════════════════════


class TestJSONFormatter:
    def test_workflow_fields_are_grouped(self):
        line = JSONFormatter().format(_record(project_id=7, phase_key="IDEA", request_id="abc"))
        entry = json.loads(line)
        assert entry["msg"] == "Project advanced"
        assert entry["level"] == "INFO"
        assert entry["workflow"] == {"project_id": 7, "phase_key": "IDEA"}
        assert entry["request_id"] == "abc"

    def test_no_workflow_block_without_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert "workflow" not in entry


class TestReadableFormatter:
    def test_scope_and_duration(self):
        line = ReadableFormatter().format(
            _record(project_id=7, phase_key="ONB", requirement_id="intake_form", duration_ms=12.4),
        )
        assert "[project=7 phase=ONB req=intake_form]" in line
        assert line.endswith("Project advanced (12ms)")

    def test_plain_message(self):
        line = ReadableFormatter().format(_record(msg="hello"))
        assert "project=" not in line
        assert line.endswith("studio_portal.test hello")


class TestRequestIdFilter:
    def test_stamps_request_id_inside_request(self, app):
        with app.test_request_context("/api/v1/phases"):
            from flask import g
            g.request_id = "req-42"
            record = _record()
            assert RequestIdFilter().filter(record) is True
            assert record.request_id == "req-42"

    def test_existing_request_id_kept(self, app):
        with app.test_request_context("/api/v1/phases"):
            from flask import g
            g.request_id = "req-42"
            record = _record(request_id="explicit")
            RequestIdFilter().filter(record)
            assert record.request_id == "explicit"

    def test_outside_request(self):
        record = _record()
        RequestIdFilter().filter(record)
        assert getattr(record, "request_id", None) is None


class TestFormatSelection:
    def test_testing_app_is_readable(self, app, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        assert _wants_json(app) is False

    def test_env_override(self, app, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        assert _wants_json(app) is True


# ═════════════════════════════════════════════════════════════════════════════
# api_error
# ═════════════════════════════════════════════════════════════════════════════


class TestApiError:
    def test_default_status_from_code(self, app):
        with app.test_request_context():
            response, status = api_error(E.NOT_FOUND, "Project not found")
            assert status == 404
            assert response.get_json() == {"success": False, "error": "Project not found", "code": "ERR_NOT_FOUND"}

    def test_status_override_and_details(self, app):
        with app.test_request_context():
            response, status = api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                                         details={"retry_after": "1 minute"})
            assert status == 429
            assert response.get_json()["details"] == {"retry_after": "1 minute"}

    def test_unknown_code_defaults_to_400(self, app):
        with app.test_request_context():
            _, status = api_error("ERR_SOMETHING_ELSE", "x")
            assert status == 400
