"""Logging helper shared by every ollamate module."""

import logging
import os
import sys


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return a configured logger with the given name.

    Logging format:  [LEVEL]  logger_name — message

    Parameters
    ----------
    name : str
        Typically __name__ of the calling module.
    level : int, optional
        Logging level.  Defaults to ``OLLAMATE_LOG_LEVEL`` from the
        environment, or INFO when unset.

    Returns
    -------
    logging.Logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="%(asctime)s  [%(levelname)s]  %(name)s — %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False

    if level is None:
        level = logging.getLevelName(os.getenv("OLLAMATE_LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    return logger
