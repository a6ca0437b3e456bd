"""
Unit tests for outreachcrm/logging_config.py.

configure_logging writes to a real file under tmp_path (_LOG_DIR/_LOG_FILE are
patched); log_call is checked against a mocked logger.
"""

import logging
import logging.handlers
import os
from unittest.mock import MagicMock, patch

import pytest

from outreachcrm.logging_config import LOGGER_NAME, configure_logging, log_call


def _reset_logger():
    logger = logging.getLogger(LOGGER_NAME)
    for h in logger.handlers[:]:
        h.close()
        logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def log_dir(tmp_path):
    _reset_logger()
    target = tmp_path / "logs"
    with patch("outreachcrm.logging_config._LOG_DIR", target), \
         patch("outreachcrm.logging_config._LOG_FILE", target / "outreachcrm.log"):
        yield target
    _reset_logger()


@pytest.fixture
def traced():
    """Patch the logger log_call fetches; yields the mock."""
    mock_logger = MagicMock()
    with patch("outreachcrm.logging_config.logging") as mock_logging:
        mock_logging.getLogger.return_value = mock_logger
        yield mock_logger


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------

class TestConfigureLogging:

    def test_returns_package_logger(self, log_dir):
        assert configure_logging().name == "outreachcrm"

    def test_creates_log_dir(self, log_dir):
        assert not log_dir.exists()
        configure_logging()
        assert log_dir.exists()

    def test_single_rotating_handler_across_calls(self, log_dir):
        configure_logging()
        configure_logging()
        handlers = logging.getLogger(LOGGER_NAME).handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)

    @pytest.mark.parametrize("env, expected", [
        (None, logging.INFO),
        ("DEBUG", logging.DEBUG),
        ("warning", logging.WARNING),
        ("BOGUS", logging.INFO),
    ])
    def test_level_from_env(self, log_dir, env, expected):
        environ = {k: v for k, v in os.environ.items() if k != "LOG_LEVEL"}
        if env is not None:
            environ["LOG_LEVEL"] = env
        with patch.dict(os.environ, environ, clear=True):
            configure_logging()
        assert logging.getLogger(LOGGER_NAME).level == expected

    def test_console_handler_added_once(self, log_dir):
        configure_logging(console=True)
        configure_logging(console=True)
        streams = [h for h in logging.getLogger(LOGGER_NAME).handlers if type(h) is logging.StreamHandler]
        assert len(streams) == 1
        assert streams[0].level == logging.WARNING

    def test_console_can_be_added_after_file_setup(self, log_dir):
        configure_logging()
        configure_logging(console=True)
        assert len(logging.getLogger(LOGGER_NAME).handlers) == 2

    def test_urllib3_capped_at_warning(self, log_dir):
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
            configure_logging()
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_module_loggers_write_to_shared_file(self, log_dir):
        configure_logging()
        logging.getLogger("outreachcrm.engine.sync").info("reconciled")
        for h in logging.getLogger(LOGGER_NAME).handlers:
            h.flush()
        line = (log_dir / "outreachcrm.log").read_text(encoding="utf-8").strip()
        assert "| INFO     | outreachcrm.engine.sync | reconciled" in line


# ---------------------------------------------------------------------------
# log_call decorator
# ---------------------------------------------------------------------------

class TestLogCall:

    def test_passes_return_value_through(self):
        @log_call
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    def test_entry_lists_args(self, traced):
        @log_call
        def companies_edit(company_id, location=None):
            pass

        companies_edit("c1", location="Doha")
        msg = traced.debug.call_args[0][0]
        assert msg.startswith("CALL companies_edit")
        assert "'c1'" in msg
        assert "location='Doha'" in msg

    def test_masks_password_kwarg(self, traced):
        @log_call
        def login(username, password=None):
            return username

        login("sam", password="hunter2")
        msg = traced.debug.call_args[0][0]
        assert "password=***" in msg
        assert "hunter2" not in msg

    def test_ok_line_with_timing(self, traced):
        @log_call
        def status():
            pass

        status()
        msg = traced.info.call_args[0][0]
        assert msg.startswith("OK   status")
        assert msg.endswith("ms")

    def test_failure_logged_and_reraised(self, traced):
        @log_call
        def sync_push():
            raise RuntimeError("HTTP 502")

        with pytest.raises(RuntimeError, match="HTTP 502"):
            sync_push()

        msg = traced.error.call_args[0][0]
        assert "FAIL sync_push" in msg
        assert "RuntimeError: HTTP 502" in msg
        traced.info.assert_not_called()
