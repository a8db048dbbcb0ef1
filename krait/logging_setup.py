"""Logging configuration helpers for krait."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(default_level: str = "WARNING") -> tuple[int, Optional[str]]:
    """Return (level, invalid_name) for ``LOG_LEVEL`` falling back to ``default_level``."""
    level_name = os.environ.get("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, None)
    if isinstance(level, int):
        return level, None
    return getattr(logging, default_level.upper(), logging.WARNING), level_name


def configure_logging(default_level: str = "WARNING",
                      log_file: Optional[Path] = None) -> int:
    """Configure process-wide logging and return resolved log level.

    The level is read from ``LOG_LEVEL``. If unset, ``default_level`` is used.
    When ``log_file`` is given it is truncated and receives the same records
    as stdout, one file per session.
    """
    level, invalid_level = resolve_level(default_level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    if invalid_level is not None:
        logging.getLogger(__name__).warning(
            "Invalid LOG_LEVEL '%s'; using %s", invalid_level, logging.getLevelName(level)
        )
    if log_file is not None:
        logging.getLogger(__name__).info("---- new session, logging to %s ----", log_file)

    return level
