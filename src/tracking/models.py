# src/tracking/models.py - v1
"""Tracking domain models: one record per dispatched worker call."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class DispatchRecord(BaseModel):
    """Individual worker call log entry."""

    call_id: str
    timestamp: datetime
    role: str
    unit: str
    attempt: int = 1
    provider: str = ""
    model: str = ""
    context_tokens: int = 0
    context_mode: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    status: Literal["success", "failed"]
    error: str = ""

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
