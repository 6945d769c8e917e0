"""Unit tests for the JSON log formatter."""
import sys
sys.path.insert(0, 'backend')

import json
import logging

from logger import JSONFormatter, setup_logging


def make_record(message, **extra):
    record = logging.LogRecord("services.worker_pool", logging.WARNING, __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_format_includes_core_fields():
    output = json.loads(JSONFormatter().format(make_record("Worker pool saturated")))

    assert output["level"] == "WARNING"
    assert output["logger"] == "services.worker_pool"
    assert output["message"] == "Worker pool saturated"
    assert output["timestamp"].endswith("Z")
    assert "thread" in output


def test_format_includes_extra_fields():
    output = json.loads(JSONFormatter().format(make_record("Dropped record", session_id="sess_1", answer_length=12)))

    assert output["session_id"] == "sess_1"
    assert output["answer_length"] == 12


def test_format_includes_exception():
    try:
        raise ValueError("bad payload")
    except ValueError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    output = json.loads(JSONFormatter().format(record))
    assert "ValueError: bad payload" in output["exception"]


def test_setup_logging_installs_single_json_handler():
    root_logger = logging.getLogger()
    saved_handlers = list(root_logger.handlers)
    saved_level = root_logger.level
    try:
        setup_logging("DEBUG")

        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)
        assert root_logger.level == logging.DEBUG
    finally:
        root_logger.handlers = saved_handlers
        root_logger.setLevel(saved_level)
