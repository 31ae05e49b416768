"""Logging helpers for the noise filter.

Wraps Python's standard logging module so every module of the filter
writes messages in the same format.  Loggers are created on demand and
configured once.
"""

import logging

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger with a preset format."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt=LOG_FORMAT,
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger


def set_level(level: int, prefix: str = "src") -> None:
    """Set the level of every logger already created under `prefix`."""
    for name in list(logging.root.manager.loggerDict):
        if name == prefix or name.startswith(prefix + "."):
            logging.getLogger(name).setLevel(level)
