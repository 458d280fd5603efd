"""Logging configuration helpers."""

import logging

# Chatty third-party loggers that only matter when debugging a backend.
_QUIET_LOGGERS = ("googleapiclient.discovery_cache", "httpx", "PIL")


def configure_logging(level: int = logging.INFO) -> None:
    """Configure booth logging with a single stream handler."""
    logger = logging.getLogger("event_photobooth")
    logger.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
