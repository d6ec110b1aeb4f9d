"""
Logging for the identity core.

All modules get their loggers from :func:`getLogger`, so that records from the
package logger tree share one JSON handler. Nothing here ever formats a
password, password hash, or verification token; the secret types render as a
redaction string if they end up in a log message anyway.
"""

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from . import config

ROOT_LOGGER = __name__.rpartition('.')[0]
"""Name of the package logger, ``aardwolf.identity`` when installed."""

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger() -> logging.Logger:
    """Attach the JSON handler to the package logger, once."""
    logger = logging.getLogger(ROOT_LOGGER)
    if not any(getattr(h, '_aardwolf', False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter(
            FORMAT,
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        ))
        handler._aardwolf = True  # type: ignore
        logger.addHandler(handler)
    logger.setLevel(str(config.get('LOGLEVEL')).upper())
    return logger


def getLogger(name: str) -> logging.Logger:
    """Get a logger that propagates to the configured package logger."""
    setup_logger()
    return logging.getLogger(name)
