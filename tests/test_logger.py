"""Tests for logger.py: setup_logging() and JsonFormatter.

Strategy: mock logging.basicConfig to inspect the arguments, since
pytest's log capture plugin interferes with real basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from nsite_deploy.logger import JsonFormatter, setup_logging


class TestSetupLogging:
    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic):
        setup_logging()

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_log_file_adds_handler(self, mock_basic, tmp_path):
        log_file = tmp_path / "deploy.log"
        setup_logging(log_file=str(log_file))

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert handlers[1].baseFilename == str(log_file)
        handlers[1].close()

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_default_level_is_info(self, mock_basic, monkeypatch):
        monkeypatch.delenv("NSITE_LOG_LEVEL", raising=False)
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_config_level_used(self, mock_basic, monkeypatch):
        monkeypatch.delenv("NSITE_LOG_LEVEL", raising=False)
        setup_logging(level="warning")
        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_env_beats_config_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("NSITE_LOG_LEVEL", "ERROR")
        setup_logging(level="WARNING")
        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        monkeypatch.setenv("NSITE_LOG_LEVEL", "ERROR")
        setup_logging(debug=True)
        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("NSITE_LOG_LEVEL", "CHATTY")
        setup_logging()
        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_json_format(self, mock_basic):
        setup_logging(log_format="json")
        handler = mock_basic.call_args[1]["handlers"][0]
        assert isinstance(handler.formatter, JsonFormatter)

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_http_loggers_silenced(self, mock_basic, monkeypatch):
        monkeypatch.delenv("NSITE_LOG_LEVEL", raising=False)
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        setup_logging()
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING

    @patch("nsite_deploy.logger.logging.basicConfig")
    def test_http_loggers_untouched_in_debug(self, mock_basic):
        logging.getLogger("urllib3").setLevel(logging.NOTSET)
        setup_logging(debug=True)
        assert logging.getLogger("urllib3").level == logging.NOTSET


class TestJsonFormatter:
    def _record(self, msg="uploaded %s", args=("/a",), exc_info=None):
        return logging.LogRecord(
            name="nsite_deploy.sync",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_fields(self):
        entry = json.loads(JsonFormatter().format(self._record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "nsite_deploy.sync"
        assert entry["msg"] == "uploaded /a"
        assert "ts" in entry
        assert "exc" not in entry

    def test_exception_included(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record(exc_info=sys.exc_info())
        entry = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in entry["exc"]

    def test_single_line(self):
        output = JsonFormatter().format(self._record(msg="a\nb", args=()))
        assert "\n" not in output
