"""
Tests for logging setup.
"""

import json
import logging
import sys

import pytest

from gshot.utils.logging import JSONFormatter, get_logger, setup_logging


@pytest.fixture
def reset_logging():
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    setup_logging()


class TestSetupLogging:
    """Test handler configuration."""

    def test_json_file_logging(self, temp_dir, reset_logging):
        log_dir = temp_dir / "logs"
        setup_logging(log_level="ERROR", log_dir=log_dir, enable_json=True)

        get_logger("gshot.tests").info("commit_created", commit_id=7, files=2)
        for handler in logging.getLogger().handlers:
            handler.flush()

        entries = [json.loads(line) for line in (log_dir / "gshot.log").read_text().splitlines()]
        entry = entries[-1]
        assert entry["level"] == "INFO"
        assert entry["logger"] == "gshot.tests"
        event = json.loads(entry["message"])
        assert event["event"] == "commit_created"
        assert event["commit_id"] == 7

    def test_console_only_by_default(self, reset_logging):
        result = setup_logging(log_level="info")

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert handlers[0].level == logging.INFO
        assert result["log_dir"] is None


class TestJSONFormatter:
    """Test JSON log records."""

    def test_extra_fields(self):
        record = logging.LogRecord("gshot.blobs", logging.WARNING, __file__, 10, "blob %s", ("x",), None)
        record.digest = "ab" * 32
        record.unserializable = object()

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "blob x"
        assert data["level"] == "WARNING"
        assert data["digest"] == "ab" * 32
        assert data["unserializable"].startswith("<object")

    def test_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("gshot", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]
