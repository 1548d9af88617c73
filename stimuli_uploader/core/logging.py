"""Logging utilities for stimuli_uploader modules."""

import logging

PACKAGE_LOGGERS = (
    'stimuli_uploader',
    'stimuli_uploader.manager',
    'stimuli_uploader.queue',
    'stimuli_uploader.scheduler',
    'stimuli_uploader.retry',
    'stimuli_uploader.transport',
    'stimuli_uploader.validation',
    'stimuli_uploader.events',
)


def get_logger(name: str) -> logging.Logger:
    """Get a logger that automatically inherits from root logger.

    This ensures that loggers work with basicConfig() without needing
    explicit setup_logging() calls. The logger will:
    - Propagate to root logger (default behavior)
    - Only set a default level if root logger has no handlers

    Args:
        name: Logger name (typically 'stimuli_uploader.<area>')

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.propagate = True

    # Only set default level if root logger has no handlers
    # (i.e., basicConfig hasn't been called yet)
    root_logger = logging.getLogger()
    if not root_logger.handlers and logger.level == logging.NOTSET:
        logger.setLevel(logging.WARNING)

    return logger


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure logging for stimuli_uploader modules.

    Sets every package logger to the given level and keeps propagation
    enabled so that the application's handlers receive the records.

    Args:
        level: Logging level (default: logging.INFO)
    """
    for logger_name in PACKAGE_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.propagate = True
