"""Centralized logging configuration for image-transform."""

import os
import sys
import logging
from typing import Optional


def _resolve_level(level: Optional[str]) -> int:
    if level:
        return getattr(logging, level.upper(), logging.INFO)
    env_level = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, env_level, logging.INFO)


def setup_logger(
    name: str = "image-transform",
    level: Optional[str] = None,
    format_type: str = "simple",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    An explicit ``level`` always wins. Without one, the level is read from
    the environment the first time the logger is configured and left alone
    afterwards, so a ``--debug`` switch survives later ``get_logger`` calls.

    Args:
        name: Logger name (defaults to "image-transform")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(_resolve_level(level))

    # Avoid duplicate handlers
    if not logger.handlers:
        if not level:
            logger.setLevel(_resolve_level(None))

        handler = logging.StreamHandler(sys.stdout)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s",
                datefmt="%H:%M:%S",
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = "image-transform") -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    return setup_logger(name)


# Create default logger instance
logger = setup_logger()
