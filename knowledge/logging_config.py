"""
Logging Configuration Module

Provides consistent logging setup across the knowledge core packages.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGERS = ("vector_store", "ingestion", "retrieval", "conversation", "knowledge")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Configure logging for the knowledge core.

    Args:
        level: Logging level or level name (default: INFO)
        log_file: Optional path to log file
        format_string: Optional custom format string

    Returns:
        The `knowledge` package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        # Remove existing handlers to avoid duplicates
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)

    return logging.getLogger("knowledge")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger below the `knowledge` package logger.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    if name.split(".")[0] in PACKAGE_LOGGERS:
        return logging.getLogger(name)
    return logging.getLogger(f"knowledge.{name}")
