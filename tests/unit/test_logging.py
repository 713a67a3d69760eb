"""Tests for logging configuration."""

import logging

import structlog

from src.core.logging import (
    LOG_FILE_PREFIX,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)


class TestLoggingConfiguration:
    """Tests for logging setup."""

    def test_creates_log_file(self, tmp_path):
        log_file = configure_logging(logs_dir=tmp_path)

        assert log_file.parent == tmp_path
        assert log_file.name.startswith(LOG_FILE_PREFIX)
        assert log_file.exists()

    def test_culls_old_log_files(self, tmp_path):
        for i in range(4):
            (tmp_path / f"{LOG_FILE_PREFIX}2020010{i}_000000.log").write_text("")

        configure_logging(log_sessions_to_keep=2, logs_dir=tmp_path)

        assert len(list(tmp_path.glob(f"{LOG_FILE_PREFIX}*.log"))) == 2

    def test_level_override(self, tmp_path):
        configure_logging(logs_dir=tmp_path, level=logging.WARNING)

        assert logging.getLogger().level == logging.WARNING

    def test_reconfigure_replaces_handlers(self, tmp_path):
        configure_logging(logs_dir=tmp_path)
        configure_logging(logs_dir=tmp_path)

        # One console handler and one file handler
        assert len(logging.getLogger().handlers) == 2


def test_get_logger():
    """get_logger returns a bound logger."""
    log = get_logger("test")

    assert callable(log.info)
    assert callable(log.warning)


def test_context_binding():
    """Context variables are bound and cleared."""
    bind_context(session_id="s-123")
    assert structlog.contextvars.get_contextvars()["session_id"] == "s-123"

    clear_context()
    assert "session_id" not in structlog.contextvars.get_contextvars()
