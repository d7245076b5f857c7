# src/pipeline/retrying.py - v1
"""Retry loop for single-unit worker jobs (survey, interview, review, fixes).

Draft waves have their own loop in wave_runner because they persist state
between attempts; every other job goes through run_with_retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from grandlibrary.core.errors import UnitFailed, WorkerError
from grandlibrary.llm.retry import RetryConfig, classify_error, compute_delay
from grandlibrary.logging.context import set_unit_context

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_retry(
    attempt_fn: Callable[[int], Awaitable[T]],
    unit: str,
    retry: RetryConfig,
    remedy: str,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call attempt_fn(attempt) until it succeeds or attempts run out.

    Only WorkerError (including unparseable output) is retried; anything
    else propagates at once.

    Raises:
        UnitFailed: After the last attempt fails.
    """
    for attempt in range(1, retry.max_attempts + 1):
        set_unit_context(unit, attempt)
        try:
            return await attempt_fn(attempt)
        except WorkerError as exc:
            if attempt >= retry.max_attempts:
                logger.error("Unit %s failed after %d attempts: %s", unit, attempt, exc)
                raise UnitFailed(unit, attempt, exc.message, remedy) from exc
            delay = compute_delay(retry, attempt, classify_error(exc))
            logger.warning(
                "Unit %s attempt %d failed (%s), retrying in %.1fs", unit, attempt, exc, delay
            )
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
