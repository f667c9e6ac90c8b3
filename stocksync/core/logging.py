"""JSON logging for the API process and the worker pool."""
from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

# Chatty at INFO: one line per scheduled run / per pooled connection.
_QUIET_LOGGERS = ("apscheduler.executors.default", "apscheduler.scheduler", "sqlalchemy.pool")


def setup_logging(level: str = "INFO", *, service: str = "stocksync") -> None:
    """Replace root handlers with one JSON stream handler.

    Every record carries ``service`` and the emitting thread name.
    """

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s",
            static_fields={"service": service},
        )
    )
    root_logger.addHandler(handler)

    if root_logger.level > logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


__all__ = ["setup_logging", "get_logger"]
