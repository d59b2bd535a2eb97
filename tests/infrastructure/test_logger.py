#!/usr/bin/env python3
"""Comprehensive tests for the Logger module."""

import io
import logging
import threading

import pytest

from vaultgate.infrastructure.logger import (
    LogLevel,
    Logger,
    get_logger,
    set_global_logger,
)


def _capture(logger: Logger) -> io.StringIO:
    """Attach a message-only handler and return its stream."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    logger.add_handler(handler)
    return stream


class TestLogLevel:
    """Tests for LogLevel."""

    def test_log_levels(self):
        """Test log level values match Python logging."""
        assert LogLevel.DEBUG == logging.DEBUG
        assert LogLevel.INFO == logging.INFO
        assert LogLevel.WARNING == logging.WARNING
        assert LogLevel.ERROR == logging.ERROR
        assert LogLevel.CRITICAL == logging.CRITICAL

    def test_parse_names(self):
        """Test parsing level names in any case."""
        assert LogLevel.parse("debug") == logging.DEBUG
        assert LogLevel.parse("WARNING") == logging.WARNING

    def test_parse_numbers(self):
        """Test numeric levels pass through."""
        assert LogLevel.parse(25) == 25

    def test_parse_unknown(self):
        """Test unknown names are rejected."""
        with pytest.raises(ValueError, match="Unknown log level"):
            LogLevel.parse("chatty")


class TestLogger:
    """Tests for Logger."""

    def test_default_console_handler(self):
        """Test a console handler is installed by default."""
        logger = Logger("vaultgate.test.console")
        assert len(logger.logger.handlers) == 1
        assert logger.logger.propagate is False

    def test_context_rendered(self):
        """Test keyword context is appended as key=value pairs."""
        logger = Logger("vaultgate.test.ctx", handlers=[])
        stream = _capture(logger)

        logger.info("Rules loaded", active=3, total=4)

        assert "INFO Rules loaded | active=3 total=4" in stream.getvalue()

    def test_level_filtering(self):
        """Test messages below the level are dropped."""
        logger = Logger("vaultgate.test.level", level="WARNING", handlers=[])
        stream = _capture(logger)

        logger.debug("hidden")
        logger.info("hidden too")
        logger.warning("shown")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "shown" in output

    def test_set_and_get_level(self):
        """Test changing the level at runtime."""
        logger = Logger("vaultgate.test.setlevel", handlers=[])
        logger.set_level("DEBUG")
        assert logger.get_level() == logging.DEBUG
        assert logger.is_enabled_for("DEBUG")

    def test_add_context(self):
        """Test temporary context is applied and removed."""
        logger = Logger("vaultgate.test.addctx", handlers=[])
        stream = _capture(logger)

        with logger.add_context(method="GET"):
            logger.info("inside", path="a.md")
        logger.info("outside")

        lines = stream.getvalue().splitlines()
        assert lines[0] == "INFO inside | method=GET path=a.md"
        assert lines[1] == "INFO outside"

    def test_context_is_thread_local(self):
        """Test context added in one thread is invisible in another."""
        logger = Logger("vaultgate.test.threads", handlers=[])
        stream = _capture(logger)

        def worker():
            logger.info("from worker")

        with logger.add_context(request="r1"):
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        assert "from worker\n" in stream.getvalue()
        assert "request=r1" not in stream.getvalue()

    def test_exception(self):
        """Test exceptions are logged with type and message."""
        logger = Logger("vaultgate.test.exc", handlers=[])
        stream = _capture(logger)

        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            logger.exception("Provider failed", e, path="a.md")

        output = stream.getvalue()
        assert "ERROR Provider failed" in output
        assert "exception_type=RuntimeError" in output
        assert "Traceback" in output

    def test_file_handler(self, tmp_path):
        """Test rotating file handler creates parent directories."""
        logger = Logger("vaultgate.test.file", handlers=[])
        log_file = tmp_path / "logs" / "vaultgate.log"
        handler = logger.create_file_handler(log_file)
        logger.add_handler(handler)

        logger.info("to file")
        handler.flush()
        logger.remove_handler(handler)
        handler.close()

        assert "to file" in log_file.read_text()

    def test_from_settings(self, tmp_path):
        """Test building a logger from the logging settings section."""
        log_file = tmp_path / "vaultgate.log"
        logger = Logger.from_settings(
            "vaultgate.test.settings",
            {"level": "DEBUG", "file": str(log_file), "format": "%(message)s"},
        )

        logger.debug("configured")
        for handler in logger.logger.handlers:
            handler.flush()

        assert logger.get_level() == logging.DEBUG
        assert len(logger.logger.handlers) == 2
        assert log_file.read_text().strip() == "configured"


class TestGlobalLogger:
    """Tests for the global logger helpers."""

    def test_get_logger_singleton(self):
        """Test get_logger returns the same instance."""
        assert get_logger() is get_logger()

    def test_set_global_logger(self):
        """Test installing a custom global logger."""
        custom = Logger("vaultgate", handlers=[])
        set_global_logger(custom)
        assert get_logger() is custom

    def test_different_name_recreates(self):
        """Test asking for another name creates a new logger."""
        first = get_logger()
        other = get_logger("vaultgate.other")
        assert other is not first
        assert other.name == "vaultgate.other"
