"""Tests for observability: StructuredLogger events, JsonFormatter, file logging."""

import json
import logging

import pytest

import vault_copilot.observability as observability
from vault_copilot.config import CopilotSettings
from vault_copilot.observability import (
    JsonFormatter,
    StructuredLogger,
    get_logger,
    setup_file_logging,
)


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = StructuredLogger("vault_copilot.test_events")
    handler = _Capture()
    logger.logger.addHandler(handler)
    yield logger, handler.records
    logger.logger.removeHandler(handler)


class TestStructuredLogger:
    def test_creates_logger(self):
        logger = StructuredLogger("test")
        assert logger.logger.name == "test"

    def test_settings_level(self):
        settings = CopilotSettings(log_level="WARNING", log_format="text")
        logger = StructuredLogger("vault_copilot.test_level", settings)
        assert logger.logger.level == logging.WARNING

    def test_model_switch_event(self, captured):
        logger, records = captured
        logger.log_model_switch("gpt-4o|openai", "OpenAI", cors_required=True)
        record = records[-1]
        assert record.event == "model_switch"
        assert record.model_key == "gpt-4o|openai"
        assert record.cors_required is True

    def test_ping_event(self, captured):
        logger, records = captured
        logger.log_ping("gpt-4o|openai", enable_cors=False, ok=False)
        assert records[-1].event == "ping"
        assert records[-1].ok is False

    def test_turn_event(self, captured):
        logger, records = captured
        logger.log_turn("gpt-4o|openai", "llm_chain", True, False, 12, 3.5)
        assert records[-1].response_chars == 12

    def test_log_error_without_traceback(self, captured):
        logger, records = captured
        logger.log_error(ValueError("test error"), {"context": "unit_test"})
        record = records[-1]
        assert record.error_type == "ValueError"
        assert record.exc_info is None


class TestJsonFormatter:
    def test_format_produces_json(self):
        formatter = JsonFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="", lineno=0,
            msg="hello", args=(), exc_info=None,
        )
        record.event = "ping"
        data = json.loads(formatter.format(record))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["event"] == "ping"
        assert "pathname" not in data


class TestFileLogging:
    def test_creates_log_file(self, tmp_path):
        log_file = setup_file_logging(str(tmp_path / "logs"))
        package_logger = logging.getLogger("vault_copilot")
        try:
            logging.getLogger("vault_copilot.test").info("written")
            for handler in package_logger.handlers:
                handler.flush()
            assert log_file.name == "vault_copilot.log"
            assert "written" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in list(package_logger.handlers):
                if getattr(handler, "baseFilename", None) == str(log_file):
                    package_logger.removeHandler(handler)
                    handler.close()


class TestSingleton:
    def test_get_logger_is_cached(self, monkeypatch):
        monkeypatch.setattr(observability, "_logger_instance", None)
        first = get_logger()
        assert get_logger() is first
        assert first.logger.name == "vault_copilot.events"
