"""Centralized logging configuration and utilities."""

import logging
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

ROOT_LOGGER = "tunnelfwd"


def setup_logging(
        level: int = logging.INFO,
        log_file: Optional[str] = None,
        console_output: bool = True
) -> logging.Logger:
    """
    Set up centralized logging configuration.

    Args:
        level: Logging level
        log_file: Optional log file name, written under ``logs/``
        console_output: Whether to output to console

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    logger.handlers.clear()

    if log_file:
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)

        file_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s',
            datefmt='%m/%d/%y %H:%M:%S'
        )
        file_handler = logging.FileHandler(log_dir / log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    if console_output:
        console_handler = RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_level=True,
            show_path=False,
            markup=False
        )
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
