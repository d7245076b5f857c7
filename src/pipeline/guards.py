# src/pipeline/guards.py - v1
"""Phase-order guards and next-command guidance.

Guards run before any mutation: a refused command leaves every artifact and
the state record exactly as they were.
"""

from __future__ import annotations

from grandlibrary.core.errors import CLI, PHASE_COMMANDS, PhaseNotReady
from grandlibrary.pipeline.state import PHASES, SessionState


def predecessor(phase: str) -> str | None:
    index = PHASES.index(phase)
    return PHASES[index - 1] if index > 0 else None


def require_ready(state: SessionState, phase: str) -> None:
    """Raise PhaseNotReady unless the predecessor of phase is complete."""
    prev = predecessor(phase)
    if prev is None:
        return
    status = state.phase(prev).status
    if status != "complete":
        raise PhaseNotReady(phase, prev, status)


# Command that continues a phase that is already in progress.
_RESUME_COMMANDS: dict[str, str] = {
    "survey": f"{CLI} survey --mode <greenfield|existing>",
    "interview": f"{CLI} interview --resume",
    "draft": f"{CLI} draft",
    "reconcile": f"{CLI} reconcile",
}


def next_command(state: SessionState) -> str:
    """The single command the operator should run next."""
    if state.awaiting_approval is not None:
        return f"{CLI} draft --approve"
    failed = sorted(doc for doc, u in state.units.items() if u.status == "failed")
    if failed:
        return f"{CLI} draft --doc {failed[0]}"
    for name in PHASES:
        status = state.phase(name).status
        if status == "in_progress":
            return _RESUME_COMMANDS[name]
        if status == "pending":
            return PHASE_COMMANDS[name] if name != "survey" else _RESUME_COMMANDS[name]
    return f"{CLI} reconcile --recheck"
