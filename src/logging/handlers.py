# src/logging/handlers.py - v1
"""Handler for the optional log file.

LOG_ROTATION is either a size ("10MB", "512KB") or a schedule
("hourly", "daily", "midnight", "weekly"); LOG_RETENTION is the number of
rotated files kept in both cases.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path

_SIZE_RE = re.compile(r"^(\d+)\s*(KB|MB|GB)$", re.IGNORECASE)
_UNIT_BYTES = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}

# schedule name -> TimedRotatingFileHandler "when"
_SCHEDULES = {"hourly": "H", "daily": "D", "midnight": "midnight", "weekly": "W0"}


def _parse_size(size_str: str) -> int:
    """'10MB' -> bytes. Raises ValueError on anything else."""
    match = _SIZE_RE.match(size_str.strip())
    if match is None:
        raise ValueError(f"Invalid size {size_str!r}; expected e.g. '10MB'")
    return int(match.group(1)) * _UNIT_BYTES[match.group(2).upper()]


def create_rotating_handler(
    log_file: str,
    rotation: str = "10MB",
    retention: int = 5,
) -> logging.Handler:
    """File handler rotating by size or schedule; parent directories are created."""
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    when = _SCHEDULES.get(rotation.strip().lower())
    if when is not None:
        return TimedRotatingFileHandler(
            str(path), when=when, backupCount=retention, encoding="utf-8", utc=True
        )
    return RotatingFileHandler(
        str(path), maxBytes=_parse_size(rotation), backupCount=retention, encoding="utf-8"
    )
