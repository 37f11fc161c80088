"""
Unified logging configuration for regionflow.

Library modules only ever call get_logger(); configuring handlers is left to
the application via setup_logging().

Usage:
    from regionflow.utils.logging import get_logger, setup_logging

    # Get a logger for your module
    logger = get_logger(__name__)

    # Setup logging at application start
    setup_logging(level="INFO", log_file="/path/to/output/run.log")

    # Use it
    logger.info("Pipeline started")
    logger.debug("Stage %d output dtype: %s", index, out.dtype)
    logger.warning("No regions found in image %d", i)

Environment Variables:
    REGIONFLOW_LOG_LEVEL: Level used when setup_logging() is called without one
"""

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


# Custom formatter with colors for terminal output
class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors to log levels for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Color a copy so other handlers still see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.RESET}"
            )
        return super().format(record)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_initialized = False


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    if name not in _loggers:
        logger = logging.getLogger(name)
        _loggers[name] = logger
    return _loggers[name]


def setup_logging(
    level: Optional[Union[str, int]] = None,
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    console: bool = True,
    colored: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging configuration for an application using regionflow.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to $REGIONFLOW_LOG_LEVEL, then INFO.
        log_file: Explicit path to log file
        log_dir: Directory for auto-named log file (uses timestamp)
        console: Whether to output to console
        colored: Whether to use colored output in console
        format_string: Custom format string

    Returns:
        Root logger instance
    """
    global _initialized

    if level is None:
        level = os.getenv("REGIONFLOW_LOG_LEVEL", "INFO")

    # Convert string level to int
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        format_string = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers if re-initializing
    if _initialized:
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        if colored and sys.stdout.isatty():
            console_handler.setFormatter(ColoredFormatter(format_string))
        else:
            console_handler.setFormatter(logging.Formatter(format_string))

        root_logger.addHandler(console_handler)

    if log_file or log_dir:
        if log_file:
            log_path = Path(log_file)
        else:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_path = log_dir / f"regionflow_{timestamp}.log"

        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(format_string))
        root_logger.addHandler(file_handler)

        root_logger.info("Logging to file: %s", log_path)

    _initialized = True
    return root_logger


def log_parameters(logger: logging.Logger, params: dict, title: str = "Parameters") -> None:
    """
    Log a dictionary of parameters in a formatted way.

    Args:
        logger: Logger instance
        params: Dictionary of parameters to log
        title: Title for the parameter block
    """
    rule = '=' * 50
    logger.info(rule)
    logger.info("%s", title)
    logger.info(rule)

    for key, value in params.items():
        if isinstance(value, (list, tuple)) and len(value) > 5:
            logger.info("  %s: [%d items]", key, len(value))
        elif isinstance(value, dict) and len(value) > 5:
            logger.info("  %s: {%d keys}", key, len(value))
        else:
            logger.info("  %s: %s", key, value)

    logger.info(rule)


def log_processing_start(
    logger: logging.Logger,
    operation: str,
    **kwargs
) -> None:
    """Log the start of a processing operation with parameters."""
    logger.info("Starting: %s", operation)
    for key, value in kwargs.items():
        logger.info("  %s: %s", key, value)


def format_duration(duration_seconds: float) -> str:
    """Human readable duration (ms below one second)."""
    if duration_seconds >= 3600:
        return f"{duration_seconds/3600:.1f} hours"
    if duration_seconds >= 60:
        return f"{duration_seconds/60:.1f} minutes"
    if duration_seconds >= 1:
        return f"{duration_seconds:.1f} seconds"
    return f"{duration_seconds*1000:.1f} ms"


def log_processing_end(
    logger: logging.Logger,
    operation: str,
    duration_seconds: Optional[float] = None,
    **results
) -> None:
    """Log the end of a processing operation with results."""
    if duration_seconds is not None:
        logger.info("Completed: %s in %s", operation, format_duration(duration_seconds))
    else:
        logger.info("Completed: %s", operation)

    for key, value in results.items():
        logger.info("  %s: %s", key, value)


class ProcessingTimer:
    """
    Context manager for timing operations.

    Logs start/end at the given level (INFO by default). Exceptions are logged
    and re-raised, never swallowed.
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.logger.log(self.level, "Starting: %s", self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time
        if exc_type is not None:
            self.logger.error(
                "Failed: %s after %s - %s", self.operation, format_duration(self.duration), exc_val,
            )
        else:
            self.logger.log(
                self.level, "Completed: %s in %s", self.operation, format_duration(self.duration),
            )
        return False
