"""
Logging configuration and utilities.

Provides centralized logging setup for the application and a helper
for reporting accumulated, non-fatal import errors.
"""

import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from health_metrics_tracker.utils.exceptions import ConfigurationError
from health_metrics_tracker.utils.parameters import LoggingConfig


def _resolve_level(level_name: str) -> int:
    """
    Translate a configured level name into a logging level.

    Args:
        level_name: Level name such as "INFO" or "debug".

    Returns:
        Numeric logging level.

    Raises:
        ConfigurationError: If the level name is unknown.
    """
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown logging level: {level_name}")
    return level


def setup_logging(config: LoggingConfig, logger_name: str | None = None) -> logging.Logger:
    """
    Set up logging for the application.

    Args:
        config: Logging configuration.
        logger_name: Optional logger name. If None, returns root logger.

    Returns:
        Configured logger instance.
    """
    level = _resolve_level(config.level)

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(config.format)

    if config.console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance by name.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


def log_error_samples(
    logger: logging.Logger, title: str, errors: Sequence[str], limit: int = 10
) -> None:
    """
    Log a count of accumulated errors followed by the first few messages.

    Args:
        logger: Logger to write to.
        title: Short description of what failed (e.g. "rows rejected").
        errors: Collected error messages.
        limit: Maximum number of messages to log.
    """
    if not errors:
        return

    logger.warning(f"{len(errors)} {title}")
    for message in errors[:limit]:
        logger.warning(f"  {message}")
    if len(errors) > limit:
        logger.warning(f"  ... and {len(errors) - limit} more")
