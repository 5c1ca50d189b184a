"""Centralized logging configuration using loguru.

Provides:
- Log level from Settings, overridable by --verbose/--quiet
- Standard library interception (httpx and httpcore log through it)
- Request and scheduler-task context binding
- Optional rotating file log
"""

from __future__ import annotations

import inspect
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger, Record

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

CONSOLE_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - "
    "<level>{message}</level>"
)

# Records from intercepted stdlib loggers carry no bound name
STDLIB_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> | "
    "<level>{level: <8}</level> | "
    "<magenta>{name}</magenta> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[name]}:{function}:{line} | {extra} | {message}"
)

# Third-party stdlib loggers that are chatty below WARNING
NOISY_LOGGERS = ("httpx", "httpcore")

_configured = False


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging-module frames so loguru reports the real call site
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _has_name(record: Record) -> bool:
    return "name" in record["extra"]


def _lacks_name(record: Record) -> bool:
    return "name" not in record["extra"]


def _effective_level(level: LogLevel, verbose: bool, quiet: bool) -> LogLevel:
    if verbose:
        return "DEBUG"
    if quiet:
        return "WARNING"
    return level


def setup_logging(
    level: LogLevel = "INFO",
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    serialize: bool = False,
) -> Logger:
    """Configure loguru sinks for the application.

    Args:
        level: Base log level from settings
        verbose: Force DEBUG (wins over quiet)
        quiet: Force WARNING
        log_file: Optional file sink; always records DEBUG and above
        rotation: When to rotate the file (e.g. "10 MB", "1 day")
        retention: How long rotated files are kept
        serialize: Write the file sink as JSON lines

    Returns:
        The configured loguru logger
    """
    global _configured

    console_level = _effective_level(level, verbose, quiet)

    logger.remove()
    for fmt, record_filter in ((CONSOLE_FORMAT, _has_name), (STDLIB_FORMAT, _lacks_name)):
        logger.add(
            sys.stderr,
            level=console_level,
            format=fmt,
            filter=record_filter,
            colorize=True,
            backtrace=True,
            diagnose=True,
        )

    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=FILE_FORMAT,
            filter=_has_name,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize,
        )

    _route_stdlib_logging(console_level)

    _configured = True
    return logger


def _route_stdlib_logging(level: LogLevel) -> None:
    """Send stdlib logging through loguru and quiet the HTTP stack."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # httpx announces every request at INFO
    noisy_level = logging.DEBUG if level in ("TRACE", "DEBUG") else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> Logger:
    """Get a logger with ``name`` bound, for use as a module-level logger.

    Usage:
        from versionista_scraper.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Fetched {} pages", count)
    """
    return logger.bind(name=name)


def bind_request(method: str, url: str) -> Logger:
    """Logger carrying the HTTP method and URL of a client request."""
    return logger.bind(name="request", method=method.upper(), url=url)


def bind_task(task_id: str, method: str, url: str) -> Logger:
    """Logger carrying a scheduler task's short id, method and URL.

    Args:
        task_id: Scheduler task identifier (first 8 characters are kept)
        method: HTTP method
        url: Request URL
    """
    return logger.bind(name="scheduler", task=task_id[:8], method=method.upper(), url=url)


class LogContext:
    """Bind extra context to every record logged inside the block.

    Usage:
        with LogContext(run="nightly"):
            logger.info("Fetching")  # record carries run="nightly"
    """

    def __init__(self, **context: Any) -> None:
        self._context = context
        self._scope: Any = None

    def __enter__(self) -> Logger:
        self._scope = logger.contextualize(**self._context)
        self._scope.__enter__()
        return logger

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._scope is not None:
            self._scope.__exit__(exc_type, exc_val, exc_tb)
            self._scope = None


def is_configured() -> bool:
    """Whether setup_logging() has run since the last reset."""
    return _configured


def reset_logging() -> None:
    """Remove every sink and clear the configured flag (used by tests)."""
    global _configured
    logger.remove()
    _configured = False
