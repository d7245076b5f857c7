# tests/unit/pipeline/test_retrying.py - v1
"""Tests for pipeline/retrying.py - bounded retries for single jobs."""

from __future__ import annotations

import pytest

from grandlibrary.core.errors import UnitFailed, WorkerError, WorkerOutputError
from grandlibrary.llm.retry import RetryConfig
from grandlibrary.pipeline.retrying import run_with_retry

RETRY = RetryConfig(max_attempts=3, base_delay_s=1.0, backoff_factor=2.0, jitter=False)


class TestRunWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, no_sleep, sleeps):
        attempts: list[int] = []

        async def job(attempt: int) -> str:
            attempts.append(attempt)
            if attempt < 3:
                raise WorkerError("503 server error")
            return "done"

        assert await run_with_retry(job, "storage", RETRY, "remedy", sleep=no_sleep) == "done"
        assert attempts == [1, 2, 3]
        assert sleeps == [1.5, 3.0]

    @pytest.mark.asyncio
    async def test_unit_failed_after_last_attempt(self, no_sleep):
        async def job(attempt: int) -> str:
            raise WorkerOutputError("no JSON payload found")

        with pytest.raises(UnitFailed) as exc_info:
            await run_with_retry(job, "storage", RETRY, "grandlib interview --topic storage",
                                 sleep=no_sleep)
        assert exc_info.value.attempts == 3
        assert exc_info.value.remedy == "grandlib interview --topic storage"
        assert "no JSON payload" in exc_info.value.last_error

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, no_sleep, sleeps):
        async def job(attempt: int) -> str:
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await run_with_retry(job, "x", RETRY, "r", sleep=no_sleep)
        assert sleeps == []
