"""Logging setup for the FormFlow entry points (API and Streamlit pages)."""

from __future__ import annotations

import logging

from formflow.config import get_settings

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logging_level(level_str: str) -> int:
    """Map a level name to its logging constant, defaulting to INFO."""
    return _LEVELS.get(str(level_str).upper(), logging.INFO)


def configure_logging(level: str | None = None) -> int:
    """Configure root logging once and return the effective level."""
    if level is None:
        level = get_settings().log_level
    log_level = get_logging_level(level)
    logging.basicConfig(level=log_level, format=_FORMAT)
    logging.getLogger("formflow").setLevel(log_level)
    return log_level
