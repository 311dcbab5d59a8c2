"""
Logging Utilities

This module sets up logging for the project and maps the verbosity names
accepted on the command line onto standard logging levels.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER_PREFIX = "pointcloud_registration"

# Verbosity names understood by the command line, lowest to highest severity
VERBOSE_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


def setup_logger(name: str,
                 level: int = logging.INFO,
                 log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__)
        level: Logging level (default: logging.INFO)
        log_file: Optional log file path. If provided, logs will be written to this file

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers
    if logger.handlers:
        return logger

    logger.setLevel(level)
    # Handlers are attached per logger; do not duplicate through the root logger
    logger.propagate = False

    console_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger


def parse_verbose_level(name: Union[str, int]) -> int:
    """
    Convert a verbosity name (fatal, error, warning, info, debug, trace) or a
    standard logging level name into a logging level number.

    Raises:
        ValueError: If the name is not a known verbosity level
    """
    if isinstance(name, int):
        return name
    key = name.strip().lower()
    if key in VERBOSE_LEVELS:
        return VERBOSE_LEVELS[key]
    if key == "critical":
        return logging.CRITICAL
    raise ValueError(
        f"Unknown verbosity level '{name}'. Expected one of: {', '.join(VERBOSE_LEVELS)}"
    )


def set_log_level(level: Union[str, int], log_file: Optional[str] = None) -> None:
    """
    Apply a level to every package logger created so far and to their handlers.

    Loggers are created at import time with ``setup_logger(__name__)``, so the
    command line can only change verbosity after the fact.

    Args:
        level: Level number or verbosity name
        log_file: Optional log file to attach to every package logger
    """
    numeric = parse_verbose_level(level)
    file_handler = None
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        # One handler instance shared by every package logger
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)s | %(processName)s[%(process)d] | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    attached = False
    manager = logging.Logger.manager
    for name in list(manager.loggerDict):
        if not name.startswith(PACKAGE_LOGGER_PREFIX):
            continue
        logger = logging.getLogger(name)
        if not logger.handlers:
            continue
        logger.setLevel(numeric)
        for handler in logger.handlers:
            handler.setLevel(numeric)
        if file_handler is not None and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            logger.addHandler(file_handler)
            attached = True
    if file_handler is not None:
        if attached:
            file_handler.setLevel(numeric)
        else:
            file_handler.close()
