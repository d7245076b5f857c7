# src/llm/retry.py - v1
"""Retry policy with exponential backoff for dispatched units.

The dispatcher never retries; the orchestrator asks this module how long
to wait before re-submitting a failed unit and when to give up.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Attempt limit and backoff for one unit of work."""

    max_attempts: int = 3
    base_delay_s: float = 2.0
    backoff_factor: float = 2.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryConfig:
        return cls(
            max_attempts=settings.dispatch_max_attempts,
            base_delay_s=settings.dispatch_retry_base_delay_s,
            backoff_factor=settings.dispatch_retry_backoff,
            jitter=settings.dispatch_retry_jitter,
        )


# Delay multipliers per error type; errors absent here use 1.0.
_ERROR_DELAY_FACTORS: dict[str, float] = {
    "rate_limit": 2.0,
    "server_error": 1.5,
    "timeout": 1.0,
    "parse_error": 0.5,
}


def classify_error(error: BaseException) -> str:
    """Classify an exception into a retry error type."""
    msg = str(error).lower()
    name = type(error).__name__.lower()

    if "429" in msg or "rate" in msg or "overloaded" in msg:
        return "rate_limit"
    if "timeout" in name or "timeout" in msg or "timed out" in msg:
        return "timeout"
    if any(c in msg for c in ("500", "502", "503", "504", "529", "server")):
        return "server_error"
    if "outputerror" in name or "json" in msg or "parse" in msg:
        return "parse_error"
    return "unknown"


def compute_delay(config: RetryConfig, attempt: int, error_type: str = "unknown") -> float:
    """Delay before the next attempt, given the 1-based attempt that just failed."""
    delay = config.base_delay_s * (config.backoff_factor ** max(0, attempt - 1))
    delay *= _ERROR_DELAY_FACTORS.get(error_type, 1.0)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay
