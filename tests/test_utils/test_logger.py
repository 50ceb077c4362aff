"""
Tests for structured logging.
"""

import json
import logging

from app.utils.logger import CorrelationIdFilter, JSONFormatter


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("api.main", logging.INFO, __file__, 10, "request handled", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_basic_fields(self):
        payload = json.loads(JSONFormatter().format(make_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "api.main"
        assert payload["message"] == "request handled"
        assert "context" not in payload

    def test_request_context(self):
        record = make_record(path="/api/v1/predict", status_code=422, field="rainfall")
        payload = json.loads(JSONFormatter().format(record))
        assert payload["context"] == {"path": "/api/v1/predict", "status_code": 422, "field": "rainfall"}

    def test_correlation_id_filter(self):
        log_filter = CorrelationIdFilter()
        log_filter.correlation_id = "abc-123"
        record = make_record()

        assert log_filter.filter(record)
        assert json.loads(JSONFormatter().format(record))["correlation_id"] == "abc-123"
