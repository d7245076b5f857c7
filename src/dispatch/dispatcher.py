# src/dispatch/dispatcher.py - v1
"""Worker dispatcher: one single-shot call to the external generation service.

dispatch(instructions, packaged) -> text

No retry, no partial results and no writes: the caller decides what to do
with the text and whether to try again. Every call is recorded in the
CallLogger when one is attached.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Union

from grandlibrary.core.errors import WorkerError
from grandlibrary.llm.base_client import BaseLLMClient
from grandlibrary.llm.models import Message

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.context.budgeter import PackagedContext
    from grandlibrary.tracking.call_logger import CallLogger

logger = logging.getLogger(__name__)

ClientSource = Union[BaseLLMClient, Callable[[str], BaseLLMClient]]

# Stop reasons meaning the model was cut off mid-output.
_TRUNCATED_STOP_REASONS = frozenset({"max_tokens", "length"})


class WorkerDispatcher:
    """Submit instructions plus a packaged context and return the text output.

    Args:
        llm: A client, or a callable mapping role name to client.
        settings: Application settings (max tokens, temperature).
        call_logger: Optional dispatch call recorder.
    """

    def __init__(
        self,
        llm: ClientSource,
        settings: Settings,
        call_logger: CallLogger | None = None,
    ) -> None:
        self._llm = llm
        self._settings = settings
        self._call_logger = call_logger

    @property
    def call_logger(self) -> CallLogger | None:
        return self._call_logger

    def _client(self, role: str) -> BaseLLMClient:
        if isinstance(self._llm, BaseLLMClient):
            return self._llm
        return self._llm(role)

    async def dispatch(
        self,
        instructions: str,
        packaged: PackagedContext,
        role: str = "worker",
        unit: str = "",
        attempt: int = 1,
    ) -> str:
        """Run one generation job.

        Raises:
            WorkerError: If the call fails, is cut off, or returns no text.
        """
        client = self._client(role)
        logger.debug(
            "Dispatching %s for %s (attempt %d, ~%d context tokens, mode=%s)",
            role, unit or "-", attempt, packaged.total_tokens, packaged.mode,
        )
        try:
            response = await client.complete(
                messages=[Message(role="user", content=packaged.text)],
                system=instructions,
                max_tokens=self._settings.llm_max_tokens,
                temperature=self._settings.llm_temperature,
            )
        except Exception as exc:
            self._record(role, unit, attempt, packaged, error=exc)
            raise WorkerError(f"{role} call for '{unit}' failed: {exc}") from exc

        error: WorkerError | None = None
        if response.stop_reason in _TRUNCATED_STOP_REASONS:
            error = WorkerError(
                f"{role} output for '{unit}' was cut off ({response.stop_reason})"
            )
        elif not response.content.strip():
            error = WorkerError(f"{role} returned empty output for '{unit}'")

        self._record(role, unit, attempt, packaged, response=response, error=error)
        if error is not None:
            raise error
        return response.content

    def _record(self, role, unit, attempt, packaged, response=None, error=None) -> None:
        if self._call_logger is None:
            return
        self._call_logger.record(
            role=role,
            unit=unit,
            attempt=attempt,
            response=response,
            context_tokens=packaged.total_tokens,
            context_mode=packaged.mode,
            error=error,
        )
