"""Logging setup shared by scripts and embedding applications."""

from __future__ import annotations

import logging

from .config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once, using LOG_LEVEL when no level is given."""
    name = (level or get_settings().log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
