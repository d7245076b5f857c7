# src/logging/context.py - v1
"""Contextual logging support: attach session, phase, unit and attempt to records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per command / per unit of work.
_session: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "session", default=None
)
_phase: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "phase", default=None
)
_unit: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "unit", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    session: str | None = None
    phase: str | None = None
    unit: str | None = None
    attempt: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        session=_session.get(),
        phase=_phase.get(),
        unit=_unit.get(),
        attempt=_attempt.get(),
    )


def set_session_context(session: str, phase: str | None = None) -> None:
    """Set session-level context (called once per command)."""
    _session.set(session)
    _phase.set(phase)


def set_unit_context(unit: str, attempt: int | None = None) -> None:
    """Set unit-level context (called per dispatched job).

    Each asyncio task runs in a copy of the parent context, so concurrent
    units in one wave never see each other's values.
    """
    _unit.set(unit)
    _attempt.set(attempt)


def clear_context() -> None:
    """Reset all context variables."""
    _session.set(None)
    _phase.set(None)
    _unit.set(None)
    _attempt.set(None)
