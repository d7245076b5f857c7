# src/logging/logger.py - v1
"""Logger factory and the two output formats.

text  "14:02:11 [INFO    ] grandlibrary.pipeline.wave_runner (draft) [api#2]: message"
json  one object per line: timestamp, level, logger, message, context, data, exception
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from grandlibrary.logging.context import LogContext, get_context

ROOT_LOGGER = "grandlibrary"

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "openai")


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _unit_label(ctx: LogContext) -> str:
    if ctx.attempt is None:
        return f"[{ctx.unit}]"
    return f"[{ctx.unit}#{ctx.attempt}]"


class JsonFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line human-readable format for the terminal."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        head = f"{_timestamp(record):%H:%M:%S} [{record.levelname:8s}] {record.name}"
        if ctx.phase:
            head += f" ({ctx.phase})"
        if ctx.unit:
            head += f" {_unit_label(ctx)}"
        line = f"{head}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def get_logger(name: str) -> logging.Logger:
    """Named logger under the package root; setup_logging() configures handlers."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> None:
    """Configure the package root logger.

    Console output goes to stderr so stdout carries only command output.
    Calling this again replaces the previous handlers.

    Args:
        level: Log level name.
        log_format: "json" or "text".
        log_file: Optional log file path.
        rotation: Size ("10MB") or schedule ("daily") for the log file.
        retention: Number of rotated files to keep.
    """
    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from grandlibrary.logging.handlers import create_rotating_handler

        handlers.append(create_rotating_handler(log_file, rotation=rotation, retention=retention))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
