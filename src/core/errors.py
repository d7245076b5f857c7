# src/core/errors.py - v1
"""Error taxonomy for the orchestrator.

Every error names the broken artifact or phase and carries the single next
command that remedies it. The category decides propagation: setup and budget
errors abort the current unit, worker errors stay contained to their unit.
"""

from __future__ import annotations

from typing import Literal

ErrorCategory = Literal["setup", "budget", "worker", "internal"]

CLI = "grandlib"

# Command that produces each phase's artifacts.
PHASE_COMMANDS: dict[str, str] = {
    "survey": f"{CLI} survey --mode greenfield --description-file <idea.md>",
    "interview": f"{CLI} interview --resume",
    "draft": f"{CLI} draft",
    "reconcile": f"{CLI} reconcile",
}


class GrandLibraryError(Exception):
    """Base class: message plus remedial command."""

    category: ErrorCategory = "internal"

    def __init__(self, message: str, remedy: str | None = None) -> None:
        self.message = message
        self.remedy = remedy
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


# --- setup errors ---


class NoSessionFound(GrandLibraryError):
    """No session state exists under the project root."""

    category: ErrorCategory = "setup"

    def __init__(self, state_path: str) -> None:
        super().__init__(
            f"No session found: {state_path} does not exist",
            remedy=PHASE_COMMANDS["survey"],
        )
        self.state_path = state_path


class PhaseNotReady(GrandLibraryError):
    """A phase was requested before its predecessor completed."""

    category: ErrorCategory = "setup"

    def __init__(self, phase: str, missing_phase: str, status: str) -> None:
        super().__init__(
            f"Phase '{phase}' is not ready: phase '{missing_phase}' is {status}, "
            "not complete",
            remedy=PHASE_COMMANDS[missing_phase],
        )
        self.phase = phase
        self.missing_phase = missing_phase


class MissingArtifact(GrandLibraryError):
    """A prerequisite record is absent from the artifact repository."""

    category: ErrorCategory = "setup"

    def __init__(self, artifact: str, producer: str) -> None:
        super().__init__(f"Missing artifact: {artifact}", remedy=producer)
        self.artifact = artifact


class WaveAwaitingApproval(GrandLibraryError):
    """Draft was asked to move on while a wave still waits for approval."""

    category: ErrorCategory = "setup"

    def __init__(self, wave: int) -> None:
        super().__init__(
            f"Wave {wave} is generated and awaiting approval",
            remedy=f"{CLI} draft --approve",
        )
        self.wave = wave


class CorruptArtifact(GrandLibraryError):
    """A record exists but cannot be parsed or validated."""

    category: ErrorCategory = "setup"

    def __init__(self, artifact: str, detail: str) -> None:
        super().__init__(
            f"{artifact} is corrupt: {detail}",
            remedy=f"git checkout -- {artifact}  (or restore it from a backup)",
        )
        self.artifact = artifact


class ManifestError(GrandLibraryError):
    """The document manifest violates its dependency rules."""

    category: ErrorCategory = "setup"


class InvalidRequest(GrandLibraryError):
    """The command conflicts with the current session state."""

    category: ErrorCategory = "setup"


class UnresolvableFinding(GrandLibraryError):
    """A finding has no artifact that regeneration could fix."""

    category: ErrorCategory = "setup"

    def __init__(self, finding_id: str, reason: str, remedy: str) -> None:
        super().__init__(f"Finding '{finding_id}' cannot be fixed here: {reason}", remedy=remedy)
        self.finding_id = finding_id


class UnknownFinding(GrandLibraryError):
    """A resolution targets a finding absent from the current report."""

    category: ErrorCategory = "setup"

    def __init__(self, finding_id: str) -> None:
        super().__init__(
            f"Finding '{finding_id}' is not in the current reconciliation report",
            remedy=f"{CLI} status",
        )
        self.finding_id = finding_id


# --- budget errors ---


class ContextOverflow(GrandLibraryError):
    """A context package cannot fit the ceiling even fully degraded."""

    category: ErrorCategory = "budget"

    def __init__(self, fragment_id: str, tokens: int, total: int, ceiling: int) -> None:
        super().__init__(
            f"Context overflow: fragment '{fragment_id}' needs ~{tokens} tokens; "
            f"fully degraded package is ~{total} tokens against a ceiling of {ceiling}",
            remedy=f"shorten '{fragment_id}' or raise CONTEXT_CEILING_TOKENS",
        )
        self.fragment_id = fragment_id
        self.tokens = tokens
        self.total = total
        self.ceiling = ceiling


class BriefOverBudget(GrandLibraryError):
    """The project brief could not be compacted under its budget."""

    category: ErrorCategory = "budget"

    def __init__(self, tokens: int, budget: int) -> None:
        super().__init__(
            f"Project brief is ~{tokens} tokens after compaction (budget {budget})",
            remedy="edit .docs/PROJECT_BRIEF.md by hand, then rerun the command",
        )
        self.tokens = tokens
        self.budget = budget


# --- worker errors ---


class WorkerError(GrandLibraryError):
    """The external generation call failed or returned nothing usable."""

    category: ErrorCategory = "worker"


class WorkerOutputError(WorkerError):
    """The worker answered but its text could not be interpreted."""


class UnitFailed(WorkerError):
    """A unit of work exhausted its dispatch attempts."""

    def __init__(self, unit: str, attempts: int, last_error: str, remedy: str) -> None:
        super().__init__(
            f"Unit '{unit}' failed after {attempts} attempts: {last_error}",
            remedy=remedy,
        )
        self.unit = unit
        self.attempts = attempts
        self.last_error = last_error
