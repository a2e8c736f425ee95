"""
Tests for logging helpers.
"""

import json
import logging

import pytest

from clonelsh.utils.logging_setup import JSONFormatter, log_operation, setup_logging, timed


class TestStructuredLogging:
    """Test operation records and formatting."""

    def test_log_operation(self, caplog):
        """Test message text and structured fields."""
        logger = logging.getLogger("tests.logging.op")
        with caplog.at_level(logging.INFO, logger="tests.logging.op"):
            log_operation(logger, "save", path="index.json", blocks=3)
        record = caplog.records[-1]
        assert record.getMessage() == "save: path=index.json, blocks=3"
        assert record.operation == "save"
        assert record.extra_fields == {"path": "index.json", "blocks": 3}

    def test_timed(self, caplog):
        """Test that timed adds a duration and yielded fields."""
        logger = logging.getLogger("tests.logging.timed")
        with caplog.at_level(logging.INFO, logger="tests.logging.timed"):
            with timed(logger, "find_all_clones", min_similarity=0.9) as fields:
                fields["clusters"] = 2
        record = caplog.records[-1]
        assert record.operation == "find_all_clones"
        assert record.extra_fields["clusters"] == 2
        assert record.extra_fields["duration_ms"] >= 0

    def test_json_formatter(self):
        """Test that JSON output carries the structured fields."""
        record = logging.LogRecord("clonelsh", logging.INFO, __file__, 1, "load: blocks=2", None, None)
        record.operation = "load"
        record.extra_fields = {"blocks": 2}
        payload = json.loads(JSONFormatter().format(record))
        assert payload["operation"] == "load"
        assert payload["blocks"] == 2
        assert payload["level"] == "INFO"


class TestSetup:
    """Test logger configuration."""

    def test_file_handler(self, tmp_path):
        """Test that a JSON lines file is written."""
        logger = setup_logging("tests.logging.file", level="DEBUG", log_dir=tmp_path,
                               console=False, file=True)
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        files = list(tmp_path.glob("clonelsh_*.jsonl"))
        assert len(files) == 1
        assert json.loads(files[0].read_text().splitlines()[0])["message"] == "hello"
        for handler in logger.handlers:
            handler.close()

    def test_unknown_level(self):
        """Test that an unknown level name is refused."""
        with pytest.raises(ValueError):
            setup_logging("tests.logging.bad", level="LOUD")
