# src/pipeline/state.py - v1
"""Session state: the resumability anchor persisted as STATE.json.

Holds phase statuses, per-phase counters, topic and unit progress and the
artifact index. Created on first survey, replaced whole after every unit of
work, never deleted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

PHASES: tuple[str, ...] = ("survey", "interview", "draft", "reconcile")

PhaseName = Literal["survey", "interview", "draft", "reconcile"]
PhaseStatus = Literal["pending", "in_progress", "complete"]
TopicStatus = Literal["pending", "in_progress", "complete", "skipped"]
UnitStatus = Literal[
    "pending", "in_progress", "pending_retry", "generated", "validated", "failed"
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PhaseState(BaseModel):
    """Status plus counters for one phase (unused counters stay at zero)."""

    status: PhaseStatus = "pending"
    skip_reason: str = ""
    # interview
    topics_total: int = 0
    topics_completed: int = 0
    # draft
    docs_total: int = 0
    docs_generated: int = 0
    docs_validated: int = 0
    waves_total: int = 0
    current_wave: int = 0
    # reconcile
    runs: int = 0
    conflicts_found: int = 0
    conflicts_resolved: int = 0
    gaps_found: int = 0
    gaps_resolved: int = 0
    traces_found: int = 0
    traces_resolved: int = 0
    verification_found: int = 0
    verification_resolved: int = 0


class TopicState(BaseModel):
    """Progress of one interview topic."""

    slug: str
    title: str = ""
    status: TopicStatus = "pending"
    skip_reason: str = ""
    decisions: int = 0


class UnitState(BaseModel):
    """Progress of one document-generation unit."""

    wave: int
    status: UnitStatus = "pending"
    attempts: int = 0
    last_error: str = ""
    generation: int = 0

    @property
    def done(self) -> bool:
        return self.status in ("generated", "validated")

    @property
    def display_status(self) -> str:
        return self.status.replace("_", "-")


class SessionState(BaseModel):
    """Singleton session record."""

    skill: str = "grand-library"
    version: str = ""
    project_name: str = "unnamed"
    mode: Literal["greenfield", "existing"] = "greenfield"
    phases: dict[str, PhaseState] = Field(
        default_factory=lambda: {name: PhaseState() for name in PHASES}
    )
    topics: list[TopicState] = Field(default_factory=list)
    units: dict[str, UnitState] = Field(default_factory=dict)
    awaiting_approval: int | None = None
    artifacts: list[str] = Field(default_factory=list)
    created: datetime = Field(default_factory=_now)
    updated: datetime = Field(default_factory=_now)

    def phase(self, name: str) -> PhaseState:
        return self.phases[name]

    def topic(self, slug: str) -> TopicState | None:
        for t in self.topics:
            if t.slug == slug:
                return t
        return None

    def record_artifact(self, path: str) -> None:
        if path not in self.artifacts:
            self.artifacts.append(path)

    def touch(self) -> None:
        self.updated = _now()

    def current_phase(self) -> tuple[str, PhaseStatus]:
        """The phase in progress, else the last complete one, else survey."""
        last_complete: str | None = None
        for name in PHASES:
            status = self.phases[name].status
            if status == "in_progress":
                return name, status
            if status == "complete":
                last_complete = name
        if last_complete is not None:
            return last_complete, "complete"
        return PHASES[0], "pending"

    def units_in_wave(self, wave: int) -> dict[str, UnitState]:
        return {doc: u for doc, u in self.units.items() if u.wave == wave}

    def check_phase_invariant(self) -> list[str]:
        """Violations of 'no phase is started before its predecessor completes'."""
        violations: list[str] = []
        for prev, name in zip(PHASES, PHASES[1:]):
            if (
                self.phases[name].status != "pending"
                and self.phases[prev].status != "complete"
            ):
                violations.append(
                    f"{name} is {self.phases[name].status} while {prev} is "
                    f"{self.phases[prev].status}"
                )
        return violations

    def refresh_draft_counters(self) -> None:
        draft = self.phases["draft"]
        draft.docs_total = len(self.units)
        draft.docs_generated = sum(1 for u in self.units.values() if u.done)
        draft.docs_validated = sum(
            1 for u in self.units.values() if u.status == "validated"
        )
        waves = sorted({u.wave for u in self.units.values()})
        draft.waves_total = len(waves)
        pending = [u.wave for u in self.units.values() if u.status != "validated"]
        draft.current_wave = min(pending) if pending else (waves[-1] if waves else 0)

    def refresh_interview_counters(self) -> None:
        interview = self.phases["interview"]
        interview.topics_total = len(self.topics)
        interview.topics_completed = sum(
            1 for t in self.topics if t.status in ("complete", "skipped")
        )
