"""
Tests for logging setup — level precedence, handlers, third-party noise.
"""

import logging

import pytest

from serverdeck.core.observability.logging_config import ENV_LEVEL, level_from_flags, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    logging.getLogger("asyncssh").setLevel(logging.NOTSET)
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("asyncssh").setLevel(logging.NOTSET)
    logging.raiseExceptions = True


class TestLevelFromFlags:
    def test_flags_take_precedence(self, monkeypatch):
        monkeypatch.setenv(ENV_LEVEL, "ERROR")
        assert level_from_flags(debug=True, quiet=True) == "DEBUG"
        assert level_from_flags(verbose=True) == "INFO"
        assert level_from_flags(quiet=True) == "ERROR"

    def test_environment_then_default(self, monkeypatch):
        monkeypatch.setenv(ENV_LEVEL, "INFO")
        assert level_from_flags() == "INFO"
        monkeypatch.delenv(ENV_LEVEL)
        assert level_from_flags() == "WARNING"


class TestSetupLogging:
    def test_single_console_handler(self, monkeypatch):
        monkeypatch.delenv("SERVERDECK_LOG_FILE", raising=False)
        setup_logging("INFO")
        setup_logging("INFO")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.INFO

    def test_unknown_level_means_warning(self, monkeypatch):
        monkeypatch.delenv("SERVERDECK_LOG_FILE", raising=False)
        setup_logging("LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler_at_its_own_level(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SERVERDECK_LOG_FILE_LEVEL", raising=False)
        log_file = tmp_path / "serverdeck.log"
        setup_logging("WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert len(root.handlers) == 2
        assert root.level == logging.DEBUG

        logging.getLogger("serverdeck.test").debug("sent: uptime")
        for handler in root.handlers:
            handler.flush()
        assert "sent: uptime" in log_file.read_text()

    def test_third_party_quieted(self, monkeypatch):
        monkeypatch.delenv("SERVERDECK_LOG_FILE", raising=False)
        setup_logging("INFO")
        assert logging.getLogger("asyncssh").level == logging.WARNING

    def test_debug_keeps_third_party(self, monkeypatch):
        monkeypatch.delenv("SERVERDECK_LOG_FILE", raising=False)
        setup_logging("DEBUG")
        assert logging.getLogger("asyncssh").level == logging.NOTSET
