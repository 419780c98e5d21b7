"""Tests for logger.py -- setup_logging(), JsonFormatter and log_event().

Covers:
- CLI mode logging (stderr handler, optional file)
- MCP mode logging (rotating NDJSON file)
- Debug level override and LOG_LEVEL handling
- JSON formatter output, including event name and fields
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import logging.handlers
import sys
from unittest.mock import patch

from git_publisher.logger import (
    LOG_BACKUP_COUNT,
    LOG_ROTATE_BYTES,
    JsonFormatter,
    log_event,
    setup_logging,
)


def _record(msg="Hello %s", args=("world",), level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    @patch("git_publisher.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        setup_logging(mode="cli")

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("git_publisher.logger.logging.basicConfig")
    def test_mcp_mode_uses_rotating_json_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "events.ndjson"
        setup_logging(mode="mcp", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        handler = handlers[0]
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert handler.maxBytes == LOG_ROTATE_BYTES
        assert handler.backupCount == LOG_BACKUP_COUNT
        assert isinstance(handler.formatter, JsonFormatter)
        handler.close()

    @patch("git_publisher.logger.logging.basicConfig")
    def test_mcp_mode_default_log_file(self, mock_basic, monkeypatch, tmp_path):
        target = tmp_path / "from-env.ndjson"
        monkeypatch.setenv("LOG_FILE", str(target))
        setup_logging(mode="mcp")

        handler = mock_basic.call_args[1]["handlers"][0]
        assert handler.baseFilename == str(target)
        handler.close()

    @patch("git_publisher.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("git_publisher.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        setup_logging(mode="cli")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("git_publisher.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        log_file = tmp_path / "cli.log"
        setup_logging(mode="cli", log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        handlers[1].close()

    @patch("git_publisher.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("git_publisher.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging(mode="cli")
        assert logging.getLogger("urllib3").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    def test_basic_output(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "test.logger"
        assert data["msg"] == "Hello world"
        assert "event" not in data
        assert "fields" not in data

    def test_event_and_fields(self):
        record = _record(
            msg="Committed %s",
            args=("abc123",),
            event="batch_ok",
            fields={"commit": "abc123", "files": 2},
        )
        data = json.loads(JsonFormatter().format(record))
        assert data["event"] == "batch_ok"
        assert data["fields"] == {"commit": "abc123", "files": 2}

    def test_includes_exception(self):
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()
        record = _record(msg="failed", args=(), level=logging.ERROR)
        record.exc_info = exc_info

        data = json.loads(JsonFormatter().format(record))
        assert "ValueError" in data["exc"]

    def test_single_line_output(self):
        record = _record(msg="line1\nline2", args=())
        output = JsonFormatter().format(record)
        assert "\n" not in output

    def test_non_serializable_fields_stringified(self):
        record = _record(event="x", fields={"path": object()})
        data = json.loads(JsonFormatter().format(record))
        assert isinstance(data["fields"]["path"], str)


class TestLogEvent:
    def test_attaches_event_and_fields(self, caplog):
        logger = logging.getLogger("git_publisher.test_event")
        with caplog.at_level(logging.INFO, logger="git_publisher.test_event"):
            log_event(
                logger,
                logging.INFO,
                "skip_ineligible",
                "Not queueing %s",
                "big.md",
                path="big.md",
                reason="too_large",
            )

        record = caplog.records[-1]
        assert record.getMessage() == "Not queueing big.md"
        assert record.event == "skip_ineligible"
        assert record.fields == {"path": "big.md", "reason": "too_large"}
