"""
Logging configuration for catalogsync.

Console output goes through rich, a plain formatter, or the JSON
StructuredFormatter; an optional file handler captures everything at DEBUG.
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

ROOT_LOGGER = "catalogsync"


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with full exception info for errors."""
        result = super().format(record)
        if record.exc_info and not record.exc_text:
            result += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return result


class PlainFormatter(logging.Formatter):
    """``level: timestamp - msg``, with file:line added for errors."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        if record.levelno >= logging.ERROR and record.pathname:
            base = (
                f"{record.levelname}: {self.formatTime(record)} - "
                f"{Path(record.pathname).name}:{record.lineno} - {record.getMessage()}"
            )
        return base


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

CONSOLE_TYPES = ("rich", "plain", "json")


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant (INFO when unrecognised)
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return LEVEL_MAP.get(level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    console_type: str = "rich",
    console_enabled: bool = True,
    file_mode: str = "a",
    stream: Any | None = None,
) -> logging.Logger:
    """
    Setup logging configuration for catalogsync.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: console only)
        console_type: 'rich', 'plain' or 'json'
        console_enabled: Whether to enable console logging
        file_mode: 'a' to append, 'w' to overwrite the log file
        stream: Output stream for plain/json handlers (default: stderr)

    Returns:
        The configured ``catalogsync`` logger
    """
    logger = logging.getLogger(ROOT_LOGGER)

    # Only clear handlers from this logger, not root or child loggers
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)
    logger.propagate = False

    if console_enabled:
        handler: logging.Handler
        if console_type == "rich":
            handler = RichHandler(
                level=level_int,
                show_time=True,
                show_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=False,
                log_time_format="[%X]",
                omit_repeated_times=False,
            )
        else:
            handler = logging.StreamHandler(stream or sys.stderr)
            handler.setLevel(level_int)
            if console_type == "json":
                from catalogsync.observability.structured_logging import StructuredFormatter

                handler.setFormatter(StructuredFormatter())
            else:
                handler.setFormatter(PlainFormatter())
        logger.addHandler(handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything; the logger level still filters
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(logging_config: dict[str, Any], project_dir: Path | None = None) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of the configuration.

    Args:
        logging_config: Mapping with level, console_type, console_enabled, file, file_mode
        project_dir: Directory used to resolve a relative log file path

    Returns:
        The configured ``catalogsync`` logger
    """
    log_file = logging_config.get("file") or logging_config.get("log_file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    return setup_logging(
        level=logging_config.get("level", logging.INFO),
        log_file=log_file,
        console_type=logging_config.get("console_type", "rich"),
        console_enabled=logging_config.get("console_enabled", True),
        file_mode=logging_config.get("file_mode", "a"),
    )


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "catalogsync")

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
