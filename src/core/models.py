# src/core/models.py - v1
"""Shared Pydantic domain models: decisions, manifest, documents, findings.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

from grandlibrary.core.text import headings, short_hash

_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _check_id(value: str) -> str:
    if not _ID_RE.match(value):
        raise ValueError(
            f"invalid identifier {value!r}: use letters, digits, '.', '_' or '-'"
        )
    return value


# === DECISIONS ===


class Decision(BaseModel):
    """One decision captured while interviewing a topic."""

    id: str
    title: str = ""
    chosen: str
    rationale: str = ""
    alternatives: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    needs_verification: bool = False
    verification_note: str = ""
    affects_docs: list[str] = Field(min_length=1)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_id(v)


class DecisionRecord(BaseModel):
    """All decisions for one interview topic (one file per topic)."""

    topic: str
    title: str = ""
    revision: int = 1
    decisions: list[Decision] = Field(default_factory=list)

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, v: str) -> str:
        return _check_id(v)

    def decision(self, decision_id: str) -> Decision | None:
        for d in self.decisions:
            if d.id == decision_id:
                return d
        return None

    @property
    def affected_docs(self) -> set[str]:
        return {doc for d in self.decisions for doc in d.affects_docs}


# === MANIFEST ===


EntryStatus = Literal["pending", "generated", "validated"]


class Requirement(BaseModel):
    """Parsed form of a manifest `requires` item."""

    kind: Literal["topic", "doc", "any"]
    target: str

    @classmethod
    def parse(cls, raw: str) -> Requirement:
        prefix, sep, rest = raw.partition(":")
        if sep and prefix in ("topic", "doc"):
            return cls(kind=prefix, target=rest.strip())  # type: ignore[arg-type]
        return cls(kind="any", target=raw.strip())


class ManifestEntry(BaseModel):
    """One planned document."""

    id: str
    title: str
    doc_type: str = "doc"
    wave: int = Field(default=1, ge=1)
    requires: list[str] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    description: str = ""
    status: EntryStatus = "pending"

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return _check_id(v)

    @property
    def requirements(self) -> list[Requirement]:
        return [Requirement.parse(r) for r in self.requires]


class DocumentManifest(BaseModel):
    """Dependency graph of planned documents grouped into ordered waves."""

    entries: list[ManifestEntry] = Field(default_factory=list)

    def entry(self, doc_id: str) -> ManifestEntry | None:
        for e in self.entries:
            if e.id == doc_id:
                return e
        return None

    @property
    def doc_ids(self) -> list[str]:
        return [e.id for e in self.entries]

    def waves(self) -> dict[int, list[ManifestEntry]]:
        """Entries grouped by wave, waves ascending, entries in manifest order."""
        grouped: dict[int, list[ManifestEntry]] = {}
        for e in self.entries:
            grouped.setdefault(e.wave, []).append(e)
        return dict(sorted(grouped.items()))

    def doc_dependencies(self, doc_id: str) -> list[str]:
        """Document ids an entry depends on (bare ids resolve to documents first)."""
        entry = self.entry(doc_id)
        if entry is None:
            return []
        known = set(self.doc_ids)
        deps: list[str] = []
        for req in entry.requirements:
            if req.kind == "doc" or (req.kind == "any" and req.target in known):
                deps.append(req.target)
        return deps

    def topic_dependencies(self, doc_id: str) -> list[str]:
        """Topic slugs an entry depends on."""
        entry = self.entry(doc_id)
        if entry is None:
            return []
        known = set(self.doc_ids)
        return [
            req.target
            for req in entry.requirements
            if req.kind == "topic" or (req.kind == "any" and req.target not in known)
        ]


# === GENERATED DOCUMENTS ===


class GeneratedDocument(BaseModel):
    """A generated document: small structured header plus body."""

    doc_id: str
    title: str
    decisions_consumed: list[str] = Field(default_factory=list)
    verification_flags: list[str] = Field(default_factory=list)
    generation: int = 1
    body: str = ""

    def section_titles(self) -> list[str]:
        return [title for _, title in headings(self.body)]


# === RECONCILIATION FINDINGS ===


FindingStatus = Literal["open", "resolved", "dismissed"]
FindingOrigin = Literal["engine", "worker"]


class _FindingBase(BaseModel):
    id: str = ""
    status: FindingStatus = "open"
    origin: FindingOrigin = "engine"
    resolution_note: str = ""

    def model_post_init(self, __context: object) -> None:
        if not self.id:
            self.id = self._make_id()

    def _make_id(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        return self.status == "open"


class MissingDecisionTrace(_FindingBase):
    """An affected document carries no trace of a decision."""

    kind: Literal["missing_decision_trace"] = "missing_decision_trace"
    decision_id: str
    topic: str
    doc_id: str

    def _make_id(self) -> str:
        return "T-" + short_hash(self.kind, self.topic, self.decision_id, self.doc_id)

    @property
    def targets(self) -> list[str]:
        return [self.doc_id]

    def describe(self) -> str:
        return (
            f"{self.doc_id} has no trace of decision {self.decision_id} "
            f"(topic {self.topic})"
        )


class Conflict(_FindingBase):
    """Two documents assert contradictory facts about one subject."""

    kind: Literal["conflict"] = "conflict"
    doc_a: str
    doc_b: str
    subject: str = ""
    description: str

    def _make_id(self) -> str:
        a, b = sorted((self.doc_a, self.doc_b))
        return "C-" + short_hash(self.kind, a, b, self.subject.lower(), self.description)

    @property
    def targets(self) -> list[str]:
        return [self.doc_a, self.doc_b]

    def describe(self) -> str:
        return f"{self.doc_a} vs {self.doc_b}: {self.description}"


class Gap(_FindingBase):
    """Planned content that does not exist."""

    kind: Literal["gap"] = "gap"
    location: str
    description: str

    def _make_id(self) -> str:
        return "G-" + short_hash(self.kind, self.location, self.description)

    @property
    def targets(self) -> list[str]:
        return [self.location.split("#", 1)[0]]

    def describe(self) -> str:
        return f"{self.location}: {self.description}"


class VerificationItem(_FindingBase):
    """A carried-forward 'needs independent confirmation' marker."""

    kind: Literal["verification"] = "verification"
    source: str  # "decision:<topic>/<id>" or "doc:<doc_id>"
    item: str
    note: str = ""

    def _make_id(self) -> str:
        return "V-" + short_hash(self.kind, self.source, self.item)

    @property
    def targets(self) -> list[str]:
        return [self.source]

    def describe(self) -> str:
        suffix = f" ({self.note})" if self.note else ""
        return f"{self.source}: {self.item}{suffix}"


Finding = Annotated[
    Union[MissingDecisionTrace, Conflict, Gap, VerificationItem],
    Field(discriminator="kind"),
]

FINDING_KINDS: tuple[str, ...] = (
    "missing_decision_trace",
    "conflict",
    "gap",
    "verification",
)


class ReconciliationReport(BaseModel):
    """Four result sets plus resolution status, superseded by each rerun."""

    run: int = 1
    snapshot_hash: str = ""
    findings: list[Finding] = Field(default_factory=list)

    def finding(self, finding_id: str) -> Finding | None:
        for f in self.findings:
            if f.id == finding_id:
                return f
        return None

    def of_kind(self, kind: str) -> list[Finding]:
        return [f for f in self.findings if f.kind == kind]

    def counts(self) -> dict[str, dict[str, int]]:
        """found/open per kind."""
        result: dict[str, dict[str, int]] = {}
        for kind in FINDING_KINDS:
            group = self.of_kind(kind)
            result[kind] = {
                "found": len(group),
                "open": sum(1 for f in group if f.is_open),
            }
        return result

    @property
    def open_findings(self) -> list[Finding]:
        return [f for f in self.findings if f.is_open]
