"""Structured Logging — verifies JSON log shape and root logger setup."""

import json
import logging
import sys

import pytest

from apiframe.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="apiframe.api.endpoint", level=logging.INFO, pathname=__file__,
        lineno=1, msg="API error response", args=(), exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_base_fields():
    log = json.loads(JSONFormatter().format(_record()))

    assert log["level"] == "INFO"
    assert log["logger"] == "apiframe.api.endpoint"
    assert log["message"] == "API error response"
    assert "timestamp" in log


def test_json_formatter_surfaces_extra_fields():
    log = json.loads(JSONFormatter().format(_record(
        method="POST", path="/api/jobs", status_code=400,
        error="Field 'name' is required.", unrelated="dropped",
    )))

    assert log["method"] == "POST"
    assert log["path"] == "/api/jobs"
    assert log["status_code"] == 400
    assert log["error"] == "Field 'name' is required."
    assert "unrelated" not in log


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    log = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in log["exception"]


@pytest.fixture
def restore_root_logger():
    level = logging.root.level
    handlers = list(logging.root.handlers)
    yield
    logging.root.handlers[:] = handlers
    logging.root.setLevel(level)


@pytest.mark.parametrize("fmt, formatter_type", [
    ("json", JSONFormatter),
    ("text", logging.Formatter),
])
def test_setup_logging(restore_root_logger, fmt, formatter_type):
    handler = setup_logging("debug", fmt)

    assert handler in logging.root.handlers
    assert logging.root.level == logging.DEBUG
    assert isinstance(handler.formatter, formatter_type)


def test_setup_logging_replaces_previous_handler(restore_root_logger):
    before = len(logging.root.handlers)

    first = setup_logging("info", "json")
    second = setup_logging("info", "json")

    assert first not in logging.root.handlers
    assert second in logging.root.handlers
    assert len(logging.root.handlers) == before + 1
