"""
Package logger for repobundle.

Library code only ever logs through `logger`; handlers and levels are
installed by `configure_logging`, which the CLI calls once at startup.
"""

import logging
import sys
from typing import Optional, TextIO


LOGGER_NAME = 'repobundle'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(LOGGER_NAME)
logger.addHandler(logging.NullHandler())


def level_for_verbosity(verbosity: int) -> int:
    """Map a `-v` count to a logging level."""

    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int = 0, stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach a stderr handler to the package logger and set its level.

    Calling it again replaces the handler installed by the previous call.
    """

    for handler in list(logger.handlers):
        if getattr(handler, '_repobundle_handler', False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    handler._repobundle_handler = True
    logger.addHandler(handler)
    logger.setLevel(level_for_verbosity(verbosity))
    logger.propagate = False
    return logger


__all__ = [
    "logger",
    "configure_logging",
    "level_for_verbosity",
]
