"""Logging setup for KINETRACK.

Modules log through ``logging.getLogger(__name__)``; applications call
``configure_logging`` once to attach handlers to the package logger.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from kinetrack.core.config import LoggingConfig


PACKAGE_LOGGER = "kinetrack"


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Attach console and optional file handlers to the package logger.

    Calling it again replaces the handlers it installed before.

    Args:
        config: Logging configuration (defaults to INFO on the console)

    Returns:
        The configured ``kinetrack`` logger
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.upper(), logging.INFO)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.format, datefmt="%Y-%m-%d %H:%M:%S")

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
