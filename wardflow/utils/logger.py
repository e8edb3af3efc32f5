"""Standardized logger utility for the entire application."""

from __future__ import annotations

import logging
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger under the ``wardflow`` namespace.

    Args:
        name: Logger name (defaults to the package logger)

    Returns:
        Logger instance

    Usage:
        from wardflow.utils.logger import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name or "wardflow")


def configure_logger(
    level: str = "INFO",
    format_string: Optional[str] = None,
    add_file_handler: bool = False,
    file_path: Optional[str] = None,
    add_console_handler: bool = True,
) -> None:
    """Configure the root logger with standard settings.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string
        add_file_handler: Whether to add file handler
        file_path: Path to log file if add_file_handler is True
        add_console_handler: Whether to install the basic stderr handler; off when
            the console manager renders log records

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    format_string = format_string or DEFAULT_FORMAT
    if add_console_handler:
        logging.basicConfig(level=numeric_level, format=format_string, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        logging.getLogger().setLevel(numeric_level)

    if add_file_handler and file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(logging.Formatter(format_string))
        logging.getLogger().addHandler(file_handler)
