"""Logging setup for the contest server."""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a timestamped stream handler to the ``mellopoang`` logger.

    Calling it again only changes the level; session events (joins,
    resets, failed snapshots) keep going to the one handler.
    """
    logger = logging.getLogger("mellopoang")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    return logger
