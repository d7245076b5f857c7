# tests/unit/dispatch/test_dispatcher.py - v1
"""Tests for dispatch/dispatcher.py - single-shot worker calls."""

from __future__ import annotations

import pytest

from grandlibrary.context.budgeter import Fragment, select
from grandlibrary.core.errors import WorkerError
from grandlibrary.dispatch.dispatcher import WorkerDispatcher
from grandlibrary.llm.base_client import BaseLLMClient
from grandlibrary.llm.models import LLMResponse, Message
from grandlibrary.tracking.call_logger import CallLogger

PACKAGED = select([Fragment(id="project-brief", kind="brief", full="brief text")], 1_000)


class _StubClient(BaseLLMClient):
    def __init__(self, content="ok", stop_reason=None, error=None):
        self.content = content
        self.stop_reason = stop_reason
        self.error = error
        self.seen: list[tuple[list[Message], str | None]] = []

    @property
    def provider_name(self) -> str:
        return "stub"

    async def complete(self, messages, system=None, max_tokens=8192, temperature=0.2):
        self.seen.append((messages, system))
        if self.error:
            raise self.error
        return LLMResponse(
            content=self.content, model="stub-1", provider="stub",
            input_tokens=5, output_tokens=2, stop_reason=self.stop_reason,
        )


class TestDispatch:
    @pytest.mark.asyncio
    async def test_instructions_as_system_context_as_user(self, settings):
        client = _StubClient("answer")
        result = await WorkerDispatcher(client, settings).dispatch("do it", PACKAGED)
        assert result == "answer"
        messages, system = client.seen[0]
        assert system == "do it"
        assert messages[0].role == "user"
        assert "brief text" in messages[0].content

    @pytest.mark.asyncio
    async def test_role_routing(self, settings):
        clients = {"drafter": _StubClient("d"), "fixer": _StubClient("f")}
        dispatcher = WorkerDispatcher(lambda role: clients[role], settings)
        assert await dispatcher.dispatch("x", PACKAGED, role="fixer") == "f"
        assert not clients["drafter"].seen

    @pytest.mark.asyncio
    async def test_client_error_wrapped(self, settings):
        client = _StubClient(error=RuntimeError("503 server error"))
        with pytest.raises(WorkerError, match="drafter call for 'api' failed: 503"):
            await WorkerDispatcher(client, settings).dispatch(
                "x", PACKAGED, role="drafter", unit="api",
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stop_reason", ["max_tokens", "length"])
    async def test_truncated_output(self, settings, stop_reason):
        client = _StubClient("partial", stop_reason=stop_reason)
        with pytest.raises(WorkerError, match="cut off"):
            await WorkerDispatcher(client, settings).dispatch("x", PACKAGED)

    @pytest.mark.asyncio
    async def test_empty_output(self, settings):
        with pytest.raises(WorkerError, match="empty output"):
            await WorkerDispatcher(_StubClient("  \n"), settings).dispatch("x", PACKAGED)


class TestCallRecording:
    @pytest.mark.asyncio
    async def test_success_and_failure_recorded(self, settings):
        call_logger = CallLogger()
        ok = WorkerDispatcher(_StubClient("fine"), settings, call_logger)
        bad = WorkerDispatcher(_StubClient(error=RuntimeError("down")), settings, call_logger)

        await ok.dispatch("x", PACKAGED, role="drafter", unit="api", attempt=2)
        with pytest.raises(WorkerError):
            await bad.dispatch("x", PACKAGED, role="drafter", unit="api", attempt=3)

        first, second = call_logger.records
        assert (first.status, first.attempt, first.provider) == ("success", 2, "stub")
        assert first.context_tokens == PACKAGED.total_tokens
        assert first.context_mode == "full"
        assert (second.status, second.error) == ("failed", "down")
        assert ok.call_logger is call_logger

    @pytest.mark.asyncio
    async def test_truncation_recorded_as_failure(self, settings):
        call_logger = CallLogger()
        dispatcher = WorkerDispatcher(_StubClient("x", stop_reason="length"), settings, call_logger)
        with pytest.raises(WorkerError):
            await dispatcher.dispatch("x", PACKAGED)
        assert call_logger.failed_calls == 1
        assert call_logger.records[0].output_tokens == 2
