# tests/conftest.py - v1
"""Shared test fixtures for unit and integration tests.

Provides a scripted LLM client that answers by worker role, temporary
project stores, and a small sample project ("ledger"): three documents in
two waves, two interviewed topics and one skipped topic.
No network access: every worker call goes to the scripted client.
"""

from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable

import pytest

from grandlibrary.config.settings import Settings, load_settings
from grandlibrary.core.models import (
    DecisionRecord,
    DocumentManifest,
    GeneratedDocument,
    ManifestEntry,
)
from grandlibrary.dispatch.dispatcher import WorkerDispatcher
from grandlibrary.llm.base_client import BaseLLMClient
from grandlibrary.llm.models import LLMResponse, Message
from grandlibrary.pipeline.orchestrator import PhaseOrchestrator
from grandlibrary.pipeline.state import SessionState, TopicState, UnitState
from grandlibrary.storage.artifacts import ArtifactRepository
from grandlibrary.storage.layout import Layout
from grandlibrary.storage.local_store import LocalRecordStore
from grandlibrary.storage.state_store import StateStore
from grandlibrary.tracking.call_logger import CallLogger


# === Sample project data ===


SURVEY_PAYLOAD: dict[str, Any] = {
    "project_name": "ledger",
    "brief": "# Ledger\n\nA small double-entry bookkeeping service for one team.",
    "topics": [
        {"slug": "storage", "title": "Storage"},
        {"slug": "api", "title": "API"},
        {"slug": "mobile", "title": "Mobile", "relevant": False, "reason": "web only"},
    ],
    "documents": [
        {
            "id": "architecture", "title": "Architecture", "doc_type": "design",
            "requires": ["topic:storage"], "sections": ["Overview", "Storage"],
            "description": "System shape and storage.",
        },
        {
            "id": "api-reference", "title": "API Reference", "doc_type": "reference",
            "requires": ["topic:api"], "sections": ["Endpoints"],
        },
        {
            "id": "operations", "title": "Operations", "doc_type": "runbook",
            "requires": ["doc:architecture", "topic:storage"], "sections": ["Deployment"],
        },
    ],
}

INTERVIEW_PAYLOADS: dict[str, dict[str, Any]] = {
    "storage": {
        "title": "Storage",
        "decisions": [
            {
                "id": "storage-1", "title": "Database", "chosen": "PostgreSQL 16",
                "rationale": "Entries are relational. Tooling is mature.",
                "alternatives": ["SQLite"], "open_questions": ["Backup window?"],
                "affects_docs": ["architecture", "operations"],
            }
        ],
    },
    "api": {
        "title": "API",
        "decisions": [
            {
                "id": "api-1", "title": "Transport", "chosen": "REST over HTTPS",
                "rationale": "Every client already speaks it.",
                "needs_verification": True,
                "verification_note": "confirm client TLS support",
                "affects_docs": ["api-reference"],
            }
        ],
    },
}

DOCUMENT_BODIES: dict[str, str] = {
    "architecture": (
        "The ledger runs as a single service (decision storage-1).\n\n"
        "## Overview\n\n**Database**: PostgreSQL 16\n\n"
        "## Storage\n\nAll journal entries live in one schema.\n"
    ),
    "api-reference": (
        "The public interface of the ledger (decision api-1).\n\n"
        "## Endpoints\n\n**Transport**: REST over HTTPS\n"
    ),
    "operations": (
        "How to run the ledger in production.\n\n"
        "## Deployment\n\n**Database**: PostgreSQL 16\n\nFollows storage-1.\n"
    ),
}


def fenced_json(payload: Any) -> str:
    return "```json\n" + json.dumps(payload, indent=2) + "\n```"


# === Scripted worker ===


_ROLE_MARKERS: tuple[tuple[str, str], ...] = (
    ("You are the surveyor", "surveyor"),
    ("You are interviewing", "interviewer"),
    ("You are writing the document", "drafter"),
    ("You are reviewing", "reconciler"),
    ("You are compacting", "compactor"),
    ("You are revising", "fixer"),
)
_UNIT_RE = re.compile(r"\((?P<unit>[A-Za-z0-9._-]+)[,)]")


def _role_of(system: str) -> str:
    for marker, role in _ROLE_MARKERS:
        if system.startswith(marker):
            return role
    return "unknown"


def _unit_of(system: str) -> str:
    head = " ".join(system.split("\n")[:2])
    match = _UNIT_RE.search(head)
    return match.group("unit") if match else ""


@dataclass
class WorkerCall:
    role: str
    unit: str
    system: str
    prompt: str
    started: float
    finished: float


Responder = Callable[[str, str], str]


class ScriptedLLMClient(BaseLLMClient):
    """Answers worker calls by role (and by document or topic within a role).

    `responses[role]` may be a string, a dict keyed by unit, or a callable
    (unit, prompt) -> text. `fail_plan[unit] = n` makes the first n calls
    for that unit raise a server error.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.responses: dict[str, str | dict[str, str] | Responder] = {}
        self.fail_plan: dict[str, int] = {}
        self.calls: list[WorkerCall] = []
        self.delay = delay

    @property
    def provider_name(self) -> str:
        return "scripted"

    def calls_for(self, role: str) -> list[WorkerCall]:
        return [c for c in self.calls if c.role == role]

    def units_called(self, role: str) -> list[str]:
        return [c.unit for c in self.calls_for(role)]

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 8192,
        temperature: float = 0.2,
    ) -> LLMResponse:
        system = system or ""
        prompt = messages[-1].content
        role, unit = _role_of(system), _unit_of(system)
        started = time.monotonic()
        await asyncio.sleep(self.delay)
        self.calls.append(WorkerCall(role, unit, system, prompt, started, time.monotonic()))

        if self.fail_plan.get(unit, 0) > 0:
            self.fail_plan[unit] -= 1
            raise RuntimeError("503 server error")

        content = self._respond(role, unit, prompt)
        return LLMResponse(
            content=content,
            input_tokens=len(prompt) // 4,
            output_tokens=len(content) // 4,
            model="scripted-1",
            provider="scripted",
            latency_ms=int(self.delay * 1000),
        )

    def _respond(self, role: str, unit: str, prompt: str) -> str:
        configured = self.responses.get(role)
        if callable(configured):
            return configured(unit, prompt)
        if isinstance(configured, dict) and unit in configured:
            return configured[unit]
        if isinstance(configured, str):
            return configured
        return _default_response(role, unit, prompt)


def _default_response(role: str, unit: str, prompt: str = "") -> str:
    if role == "surveyor":
        return fenced_json(SURVEY_PAYLOAD)
    if role == "interviewer":
        return fenced_json(INTERVIEW_PAYLOADS.get(unit, {"decisions": []}))
    if role in ("drafter", "fixer"):
        return DOCUMENT_BODIES.get(unit, f"Body of {unit}.\n\n## Overview\n\nText.\n")
    if role == "reconciler":
        return fenced_json({"conflicts": [], "gaps": []})
    if role == "compactor":
        sections = [
            f"{line}\n- compacted" for line in prompt.splitlines()
            if line.startswith("## Decisions: ")
        ]
        return "\n\n".join(["# Ledger\n\nBookkeeping service.", *sections])
    return "ok"


# === Fixtures: configuration and stores ===


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted at a temp project with instant, deterministic retries."""
    return load_settings(
        _env_file=None,
        project_root=tmp_path,
        dispatch_retry_base_delay_s=0.0,
        dispatch_retry_jitter=False,
        reconcile_worker_review=False,
        interview_pause_per_topic=False,
    )


@pytest.fixture
def layout(settings: Settings) -> Layout:
    return Layout.from_settings(settings)


@pytest.fixture
def store(settings: Settings) -> LocalRecordStore:
    return LocalRecordStore(settings.root)


@pytest.fixture
def repo(store: LocalRecordStore, layout: Layout) -> ArtifactRepository:
    return ArtifactRepository(store, layout)


@pytest.fixture
def state_store(store: LocalRecordStore, layout: Layout) -> StateStore:
    return StateStore(store, layout)


# === Fixtures: worker ===


@pytest.fixture
def llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture
def call_logger() -> CallLogger:
    return CallLogger()


@pytest.fixture
def dispatcher(llm: ScriptedLLMClient, settings: Settings, call_logger: CallLogger) -> WorkerDispatcher:
    return WorkerDispatcher(llm, settings, call_logger)


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by retry loops (filled by the no_sleep fixture)."""
    return []


@pytest.fixture
def no_sleep(sleeps: list[float]):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def orchestrator(settings, store, dispatcher, no_sleep) -> PhaseOrchestrator:
    return PhaseOrchestrator(settings, store, dispatcher, sleep=no_sleep)


# === Fixtures: sample artifacts ===


@pytest.fixture
def sample_manifest() -> DocumentManifest:
    """architecture + api-reference in wave 1, operations in wave 2."""
    entries = []
    for doc in SURVEY_PAYLOAD["documents"]:
        entries.append(ManifestEntry(**doc, wave=2 if doc["id"] == "operations" else 1))
    return DocumentManifest(entries=entries)


@pytest.fixture
def sample_records() -> list[DecisionRecord]:
    return [
        DecisionRecord(topic=topic, **payload)
        for topic, payload in sorted(INTERVIEW_PAYLOADS.items())
    ]


@pytest.fixture
def sample_documents(sample_manifest: DocumentManifest) -> dict[str, GeneratedDocument]:
    docs = {}
    for entry in sample_manifest.entries:
        docs[entry.id] = GeneratedDocument(
            doc_id=entry.id,
            title=entry.title,
            body=DOCUMENT_BODIES[entry.id],
        )
    return docs


@pytest.fixture
def seed_session(state_store, repo, sample_manifest, sample_records, sample_documents):
    """Write a session whose phases up to `through` are complete.

    through="survey"     brief + manifest, topics pending
    through="interview"  plus decision records and brief lines
    through="draft"      plus every document, all units validated
    """

    async def _seed(through: str = "survey") -> SessionState:
        await repo.write_brief(SURVEY_PAYLOAD["brief"], "ledger", 20)
        await repo.write_manifest(sample_manifest)
        state = await state_store.create(project_name="ledger")
        state.phase("survey").status = "complete"
        state.topics = [
            TopicState(slug="storage", title="Storage"),
            TopicState(slug="api", title="API"),
            TopicState(slug="mobile", title="Mobile", status="skipped", skip_reason="web only"),
        ]
        state.units = {e.id: UnitState(wave=e.wave) for e in sample_manifest.entries}

        if through in ("interview", "draft"):
            for record in sample_records:
                await repo.write_decision_record(record)
                state.topic(record.topic).status = "complete"
                state.topic(record.topic).decisions = len(record.decisions)
            state.phase("interview").status = "complete"

        if through == "draft":
            for doc in sample_documents.values():
                await repo.write_document(doc)
                state.units[doc.doc_id].status = "validated"
                state.units[doc.doc_id].generation = 1
            state.phase("draft").status = "complete"

        state.refresh_interview_counters()
        state.refresh_draft_counters()
        await state_store.save(state)
        return state

    return _seed
