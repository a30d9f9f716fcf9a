"""
Logging setup shared by every module.
"""

import logging
import os

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str) -> logging.Logger:
    """
    Create or fetch a named logger with a single stream handler.

    Args:
        name: Logger name, usually ``__name__``

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(os.getenv("LOG_FORMAT", DEFAULT_FORMAT)))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
