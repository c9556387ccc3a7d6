"""
Logging configuration for the AMP document adapter.
"""

import logging
import sys
from typing import Optional


def setup_logger(
    name: str = "amp_dom",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return a logger instance.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path for logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # setup_logger is called again by the CLI to change the level, so only
    # the level is updated when handlers are already installed.
    if logger.handlers:
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # Diagnostics go to stderr; stdout carries the normalized HTML in the CLI.
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


logger = setup_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Child loggers (e.g. "amp_dom.encoding") inherit the package logger's
    handlers and level, and their name shows which stage of the load/save
    cycle produced each message.

    Args:
        module_name: Name of the module (e.g., 'document', 'encoding')

    Returns:
        Child logger instance
    """
    return logging.getLogger(f"amp_dom.{module_name}")
