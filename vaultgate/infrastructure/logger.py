#!/usr/bin/env python3
"""Structured logging system for VaultGate.

This module provides a structured logging system with:
- Multiple log levels (DEBUG, INFO, WARNING, ERROR)
- Structured context (key-value pairs) appended to each message
- Console output by default, rotating file output on request
- Thread-local context management

Example:
    >>> logger = Logger(level=LogLevel.INFO)
    >>> logger.info("Rules loaded", active=12, total=14)
    >>> with logger.add_context(path="Private/a.md"):
    ...     logger.debug("Evaluating")
"""

import logging
import logging.handlers
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel:
    """Log levels matching Python's logging module."""

    DEBUG = logging.DEBUG  # 10
    INFO = logging.INFO  # 20
    WARNING = logging.WARNING  # 30
    ERROR = logging.ERROR  # 40
    CRITICAL = logging.CRITICAL  # 50

    @classmethod
    def parse(cls, level: Union[int, str]) -> int:
        """Convert a level name or number to a logging level.

        Raises:
            ValueError: If the name is not a known level
        """
        if isinstance(level, int):
            return level
        value = getattr(cls, str(level).upper(), None)
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level: {level}")
        return value


class Logger:
    """Structured logger with context support.

    Wraps a stdlib ``logging.Logger`` and renders keyword context as
    ``key=value`` pairs after the message.
    """

    _context_stack = threading.local()

    def __init__(
        self,
        name: str = "vaultgate",
        level: Union[int, str] = LogLevel.INFO,
        handlers: Optional[List[logging.Handler]] = None,
    ):
        """Initialize logger.

        Args:
            name: Logger name for identification
            level: Minimum log level to output
            handlers: Optional list of logging handlers
        """
        self.name = name
        self.logger = logging.getLogger(name)
        self.set_level(level)

        if handlers is None:
            handlers = [self._create_console_handler()]

        self.logger.handlers.clear()
        for handler in handlers:
            self.logger.addHandler(handler)

        self.logger.propagate = False

    @classmethod
    def from_settings(cls, name: str, settings: Dict[str, Any]) -> "Logger":
        """Build a logger from the ``logging`` settings section.

        Args:
            name: Logger name
            settings: Dict with optional ``level``, ``file`` and ``format`` keys

        Returns:
            Configured logger
        """
        fmt = settings.get("format") or DEFAULT_FORMAT
        logger = cls(name=name, level=settings.get("level") or "INFO", handlers=[])
        logger.add_handler(logger._create_console_handler(fmt))
        if settings.get("file"):
            logger.add_handler(logger.create_file_handler(settings["file"], fmt=fmt))
        return logger

    def _create_console_handler(self, fmt: str = DEFAULT_FORMAT) -> logging.StreamHandler:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
        return handler

    def create_file_handler(
        self,
        filename: Union[str, Path],
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        fmt: str = DEFAULT_FORMAT,
    ) -> logging.handlers.RotatingFileHandler:
        """Create rotating file handler.

        Args:
            filename: Path to log file
            max_bytes: Maximum size before rotation
            backup_count: Number of backup files to keep
            fmt: Log line format

        Returns:
            Configured rotating file handler
        """
        Path(filename).expanduser().parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            Path(filename).expanduser(), maxBytes=max_bytes, backupCount=backup_count
        )
        handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
        return handler

    def add_handler(self, handler: logging.Handler) -> None:
        """Add a new output handler."""
        self.logger.addHandler(handler)

    def remove_handler(self, handler: logging.Handler) -> None:
        """Remove an output handler."""
        self.logger.removeHandler(handler)

    def set_level(self, level: Union[int, str]) -> None:
        """Set the minimum log level.

        Args:
            level: New log level (number or name)
        """
        self.logger.setLevel(LogLevel.parse(level))

    def get_level(self) -> int:
        """Get current log level."""
        return self.logger.level

    def _get_context(self) -> Dict[str, Any]:
        if not hasattr(self._context_stack, "stack"):
            self._context_stack.stack = [{}]

        context: Dict[str, Any] = {}
        for ctx in self._context_stack.stack:
            context.update(ctx)
        return context

    def _format_message(self, msg: str, context: Dict[str, Any]) -> str:
        if context:
            ctx_str = " ".join(f"{k}={v}" for k, v in context.items())
            return f"{msg} | {ctx_str}"
        return msg

    @contextmanager
    def add_context(self, **kwargs):
        """Context manager to add temporary context.

        Args:
            **kwargs: Key-value pairs to add to context

        Example:
            >>> with logger.add_context(method="GET"):
            ...     logger.info("Filtering listing")
        """
        if not hasattr(self._context_stack, "stack"):
            self._context_stack.stack = [{}]

        self._context_stack.stack.append(kwargs)
        try:
            yield
        finally:
            self._context_stack.stack.pop()

    def _log(self, level: int, msg: str, context: Dict[str, Any], **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        combined_context = self._get_context()
        combined_context.update(context)
        self.logger.log(
            level,
            self._format_message(msg, combined_context),
            extra={"context": combined_context},
            **kwargs,
        )

    def debug(self, msg: str, **context) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, context)

    def info(self, msg: str, **context) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, context)

    def warning(self, msg: str, **context) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, context)

    def error(self, msg: str, **context) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, context)

    def exception(self, msg: str, exc: BaseException, **context) -> None:
        """Log exception with traceback.

        Args:
            msg: Log message
            exc: Exception to log
            **context: Additional context key-value pairs
        """
        context["exception_type"] = type(exc).__name__
        context["exception_message"] = str(exc)
        self._log(logging.ERROR, msg, context, exc_info=exc)

    def is_enabled_for(self, level: Union[int, str]) -> bool:
        """Check if logger is enabled for given level."""
        return self.logger.isEnabledFor(LogLevel.parse(level))


# Global logger instance
_global_logger: Optional[Logger] = None


def get_logger(name: str = "vaultgate") -> Logger:
    """Get or create a logger instance.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    global _global_logger
    if _global_logger is None or _global_logger.name != name:
        _global_logger = Logger(name=name)
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Set the global logger instance.

    Args:
        logger: Logger to use globally
    """
    global _global_logger
    _global_logger = logger
