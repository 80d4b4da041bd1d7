"""Logging helpers shared by every fx_history module."""

from __future__ import annotations

import logging

PACKAGE_LOGGER = "fx_history"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def configure_logging(level: int = logging.INFO) -> None:
    """Install the package log format on first call; later calls only change the level."""

    global _configured
    if not _configured:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        _configured = True
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    if not _configured:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["LOG_FORMAT", "configure_logging", "get_logger"]
