# src/tracking/call_logger.py - v1
"""Dispatch call logging: records every worker call for cost tracking.

Records accumulate in memory and are flushed as JSON lines to the calls
log, one append per flush.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from grandlibrary.tracking.models import DispatchRecord

if TYPE_CHECKING:
    from grandlibrary.llm.models import LLMResponse
    from grandlibrary.storage.base_store import BaseRecordStore

logger = logging.getLogger(__name__)


class CallLogger:
    """Accumulates DispatchRecord entries during a command."""

    def __init__(self) -> None:
        self._records: list[DispatchRecord] = []
        self._flushed = 0

    def record(
        self,
        role: str,
        unit: str,
        attempt: int = 1,
        response: LLMResponse | None = None,
        context_tokens: int = 0,
        context_mode: str = "",
        error: BaseException | None = None,
    ) -> DispatchRecord:
        """Record one dispatch (successful when error is None)."""
        record = DispatchRecord(
            call_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            role=role,
            unit=unit,
            attempt=attempt,
            provider=response.provider if response else "",
            model=response.model if response else "",
            context_tokens=context_tokens,
            context_mode=context_mode,
            input_tokens=response.input_tokens if response else 0,
            output_tokens=response.output_tokens if response else 0,
            latency_ms=response.latency_ms if response else 0,
            status="failed" if error is not None else "success",
            error=str(error) if error is not None else "",
        )
        self._records.append(record)
        return record

    @property
    def records(self) -> list[DispatchRecord]:
        return list(self._records)

    @property
    def total_tokens(self) -> int:
        return sum(r.total_tokens for r in self._records)

    @property
    def total_calls(self) -> int:
        return len(self._records)

    @property
    def failed_calls(self) -> int:
        return sum(1 for r in self._records if r.status == "failed")

    async def flush(self, store: BaseRecordStore, key: str) -> int:
        """Append records not yet flushed to the JSONL log. Returns count written."""
        pending = self._records[self._flushed:]
        if not pending:
            return 0
        lines = "".join(r.model_dump_json() + "\n" for r in pending)
        await store.append(key, lines)
        self._flushed = len(self._records)
        logger.debug("Flushed %d dispatch records to %s", len(pending), key)
        return len(pending)
