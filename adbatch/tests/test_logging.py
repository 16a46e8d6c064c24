"""Tests for logging setup."""

import json
import logging

from adbatch.config import LogConfig
from adbatch.utils.logging import BatchJSONFormatter, setup_logger

class TestBatchJSONFormatter:
    """Test cases for BatchJSONFormatter."""

    def _record(self, **extra):
        record = logging.LogRecord("adbatch.test", logging.ERROR, __file__, 1, "Target %s failed", ("c2",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_context_fields(self):
        """Test batch context passed through extra becomes JSON keys."""
        line = BatchJSONFormatter().format(self._record(job_id="job_1", target_id="c2"))
        entry = json.loads(line)

        assert entry["message"] == "Target c2 failed"
        assert entry["level"] == "ERROR"
        assert entry["job_id"] == "job_1"
        assert entry["target_id"] == "c2"
        assert "session_id" not in entry

class TestSetupLogger:
    """Test cases for setup_logger."""

    def test_handlers_added_once(self):
        """Test repeated setup reuses the existing handlers."""
        logger = setup_logger("adbatch.tests.once", LogConfig(level="DEBUG"))
        again = setup_logger("adbatch.tests.once")

        assert again is logger
        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG

    def test_json_format(self, tmp_path):
        """Test JSON output and the optional file handler."""
        log_file = tmp_path / "adbatch.log"
        logger = setup_logger("adbatch.tests.json", LogConfig(json_format=True, file_path=str(log_file)))
        logger.info("Session opened", extra={"session_id": "s1"})
        for handler in logger.handlers:
            handler.flush()

        assert len(logger.handlers) == 2
        assert all(isinstance(h.formatter, BatchJSONFormatter) for h in logger.handlers)
        assert json.loads(log_file.read_text().strip())["session_id"] == "s1"
        for handler in logger.handlers:
            handler.close()

    def test_module_loggers_are_configured(self):
        """Test the gateway client and progress tracker log through the package handlers."""
        from adbatch.gateway import client
        from adbatch.progress import tracker

        for module in (client, tracker):
            assert module.logger.name == module.__name__
            assert module.logger.handlers
