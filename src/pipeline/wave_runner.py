# src/pipeline/wave_runner.py - v1
"""Draft wave execution: fan-out, per-unit retry, write-after-complete.

One wave's units are dispatched concurrently (bounded by a semaphore) and
the runner waits for every unit before returning, so the caller evaluates
the wave gate only once all siblings have settled. A unit's document is
written only after its dispatch returns successfully; the state record is
replaced after every attempt so a restart re-dispatches exactly the units
not yet generated.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

from grandlibrary.context.fragments import (
    brief_fragment,
    decision_fragment,
    document_fragment,
    planned_entry_fragment,
)
from grandlibrary.core.errors import CLI, ContextOverflow, UnitFailed, WorkerError
from grandlibrary.core.models import (
    DecisionRecord,
    DocumentManifest,
    GeneratedDocument,
    ManifestEntry,
)
from grandlibrary.dispatch import roles
from grandlibrary.dispatch.parsing import extract_markdown
from grandlibrary.llm.retry import RetryConfig, classify_error, compute_delay
from grandlibrary.logging.context import set_unit_context

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.context.budgeter import ContextBudgeter, Fragment, PackagedContext
    from grandlibrary.dispatch.dispatcher import WorkerDispatcher
    from grandlibrary.pipeline.state import SessionState
    from grandlibrary.storage.artifacts import ArtifactRepository
    from grandlibrary.storage.layout import Layout
    from grandlibrary.storage.state_store import StateStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Failed units wait for an explicit "draft --doc", which resets them to pending.
_RUNNABLE = frozenset({"pending", "in_progress", "pending_retry"})


@dataclass
class WaveResult:
    """Outcome of one wave run."""

    wave: int
    dispatched: list[str] = field(default_factory=list)
    generated: list[str] = field(default_factory=list)
    failures: list[UnitFailed] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def decisions_for(doc_id: str, records: list[DecisionRecord]) -> list[str]:
    """Qualified ids of the decisions that affect doc_id."""
    return [
        f"{r.topic}/{d.id}"
        for r in records
        for d in r.decisions
        if doc_id in d.affects_docs
    ]


def verification_flags_for(doc_id: str, records: list[DecisionRecord]) -> list[str]:
    return [
        f"{d.id}: {d.verification_note or d.chosen}"
        for r in records
        for d in r.decisions
        if d.needs_verification and doc_id in d.affects_docs
    ]


def relevant_records(
    entry: ManifestEntry,
    manifest: DocumentManifest,
    records: list[DecisionRecord],
) -> list[DecisionRecord]:
    """Records of required topics plus any record with a decision affecting entry."""
    topics = set(manifest.topic_dependencies(entry.id))
    return [r for r in records if r.topic in topics or entry.id in r.affected_docs]


def document_fragments(
    entry: ManifestEntry,
    manifest: DocumentManifest,
    brief: str,
    records: list[DecisionRecord],
    documents: dict[str, GeneratedDocument],
    settings: Settings,
    layout: Layout,
) -> list[Fragment]:
    """Context for generating one document.

    Brief, relevant decision records, the documents it requires and a
    planned-entry stand-in for each same-wave sibling.
    """
    fragments: list[Fragment] = [brief_fragment(brief)]
    fragments += [
        decision_fragment(r, layout)
        for r in sorted(relevant_records(entry, manifest, records), key=lambda r: r.topic)
    ]
    for dep in manifest.doc_dependencies(entry.id):
        if dep in documents:
            fragments.append(
                document_fragment(documents[dep], layout, settings.summary_max_tokens)
            )
    for sibling in manifest.waves().get(entry.wave, []):
        if sibling.id != entry.id:
            fragments.append(planned_entry_fragment(sibling))
    return fragments


def drafter_instructions(entry: ManifestEntry, project_name: str) -> str:
    return roles.instructions(
        roles.DRAFTER,
        project_name=project_name,
        title=entry.title,
        doc_id=entry.id,
        doc_type=entry.doc_type,
        description=entry.description or entry.title,
        sections=", ".join(entry.sections) or "(choose sections that fit the purpose)",
    )


class WaveRunner:
    """Run the pending units of one wave to completion or failure."""

    def __init__(
        self,
        settings: Settings,
        repo: ArtifactRepository,
        state_store: StateStore,
        budgeter: ContextBudgeter,
        dispatcher: WorkerDispatcher,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._repo = repo
        self._state_store = state_store
        self._budgeter = budgeter
        self._dispatcher = dispatcher
        self._sleep = sleep
        self._retry = RetryConfig.from_settings(settings)
        self._lock = asyncio.Lock()

    async def run(
        self,
        state: SessionState,
        manifest: DocumentManifest,
        wave: int,
        only: set[str] | None = None,
    ) -> WaveResult:
        """Dispatch every runnable unit of wave.

        Args:
            state: Session state, mutated and saved after every attempt.
            manifest: The validated document manifest.
            wave: Wave number to run.
            only: Restrict the run to these document ids.

        Returns:
            WaveResult; failed units are listed, never raised.
        """
        brief = await self._repo.require_brief()
        records = await self._repo.list_decision_records()
        documents: dict[str, GeneratedDocument] = {}
        for doc_id in manifest.doc_ids:
            doc = await self._repo.read_document(doc_id)
            if doc is not None:
                documents[doc_id] = doc

        entries = [
            e for e in manifest.waves().get(wave, [])
            if state.units[e.id].status in _RUNNABLE and (only is None or e.id in only)
        ]
        result = WaveResult(wave=wave, dispatched=[e.id for e in entries])
        if not entries:
            return result

        logger.info("Wave %d: dispatching %d units: %s", wave, len(entries), result.dispatched)
        semaphore = asyncio.Semaphore(self._settings.dispatch_max_parallel)
        outcomes = await asyncio.gather(
            *(
                self._run_unit(state, manifest, e, brief, records, documents, semaphore)
                for e in entries
            )
        )
        for entry, failure in zip(entries, outcomes):
            if failure is None:
                result.generated.append(entry.id)
            else:
                result.failures.append(failure)
        logger.info(
            "Wave %d settled: %d generated, %d failed",
            wave, len(result.generated), len(result.failures),
        )
        return result

    async def _save(self, state: SessionState) -> None:
        state.refresh_draft_counters()
        await self._state_store.save(state)

    async def _run_unit(
        self,
        state: SessionState,
        manifest: DocumentManifest,
        entry: ManifestEntry,
        brief: str,
        records: list[DecisionRecord],
        documents: dict[str, GeneratedDocument],
        semaphore: asyncio.Semaphore,
    ) -> UnitFailed | None:
        unit = state.units[entry.id]
        remedy = f"{CLI} draft --doc {entry.id}"
        async with semaphore:
            set_unit_context(entry.id)
            try:
                packaged = self._budgeter.select(
                    document_fragments(
                        entry, manifest, brief, records, documents,
                        self._settings, self._repo.layout,
                    )
                )
            except ContextOverflow as exc:
                async with self._lock:
                    unit.status = "failed"
                    unit.last_error = exc.message
                    await self._save(state)
                return UnitFailed(entry.id, 0, exc.message, exc.remedy or remedy)

            instructions = drafter_instructions(entry, state.project_name)
            for attempt in range(1, self._retry.max_attempts + 1):
                set_unit_context(entry.id, attempt)
                async with self._lock:
                    unit.status = "in_progress"
                    unit.attempts += 1
                    await self._save(state)
                try:
                    body = await self._generate(instructions, packaged, entry.id, attempt)
                except WorkerError as exc:
                    final = attempt >= self._retry.max_attempts
                    async with self._lock:
                        unit.status = "failed" if final else "pending_retry"
                        unit.last_error = exc.message
                        await self._save(state)
                    if final:
                        logger.error(
                            "Unit %s failed after %d attempts: %s", entry.id, attempt, exc
                        )
                        return UnitFailed(entry.id, attempt, exc.message, remedy)
                    delay = compute_delay(self._retry, attempt, classify_error(exc))
                    logger.warning(
                        "Unit %s attempt %d failed (%s), retrying in %.1fs",
                        entry.id, attempt, exc, delay,
                    )
                    await self._sleep(delay)
                    continue

                document = GeneratedDocument(
                    doc_id=entry.id,
                    title=entry.title,
                    decisions_consumed=decisions_for(entry.id, records),
                    verification_flags=verification_flags_for(entry.id, records),
                    generation=unit.generation + 1,
                    body=body,
                )
                async with self._lock:
                    key = await self._repo.write_document(document)
                    unit.status = "generated"
                    unit.generation = document.generation
                    unit.last_error = ""
                    state.record_artifact(key)
                    await self._save(state)
                logger.info("Unit %s generated on attempt %d", entry.id, attempt)
                return None
        return None  # pragma: no cover - loop always returns

    async def _generate(
        self, instructions: str, packaged: PackagedContext, doc_id: str, attempt: int
    ) -> str:
        text = await self._dispatcher.dispatch(
            instructions, packaged, role=roles.DRAFTER, unit=doc_id, attempt=attempt
        )
        return extract_markdown(text)
