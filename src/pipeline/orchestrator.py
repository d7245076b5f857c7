# src/pipeline/orchestrator.py - v1
"""Phase orchestrator: drives Survey -> Interview -> Draft -> Reconcile.

A strict state machine persisted in STATE.json. Every command:

  1. loads the session state (NoSessionFound if there is none);
  2. checks the phase guard before touching anything (PhaseNotReady);
  3. does its work unit by unit, writing an artifact only after the
     dispatch that produced it succeeded, and saving the state after each
     unit so an interrupted command resumes where it stopped.

Worker failures are contained to their unit and reported in the
CommandResult; setup and budget errors abort the command.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from pydantic import BaseModel

from grandlibrary.context.budgeter import ContextBudgeter, Fragment, PackagedContext
from grandlibrary.context.fragments import (
    brief_fragment,
    decision_fragment,
    other_fragment,
    task_fragment,
)
from grandlibrary.context.tokens import estimate_tokens
from grandlibrary.core.errors import (
    CLI,
    PHASE_COMMANDS,
    GrandLibraryError,
    InvalidRequest,
    ManifestError,
    MissingArtifact,
    UnitFailed,
    WaveAwaitingApproval,
    WorkerOutputError,
)
from grandlibrary.core.models import (
    DecisionRecord,
    DocumentManifest,
    GeneratedDocument,
    ManifestEntry,
    ReconciliationReport,
)
from grandlibrary.core.text import slugify
from grandlibrary.dispatch import roles
from grandlibrary.dispatch.parsing import InterviewResult, SurveyResult, parse_result
from grandlibrary.llm.retry import RetryConfig
from grandlibrary.logging.context import set_session_context
from grandlibrary.pipeline.brief import (
    Compactor,
    check_topic_headings,
    compact_brief,
    decision_lines,
    remove_topic,
    set_topic_lines,
)
from grandlibrary.pipeline.guards import next_command, require_ready
from grandlibrary.pipeline.retrying import run_with_retry
from grandlibrary.pipeline.state import PHASES, SessionState, TopicState, UnitState
from grandlibrary.pipeline.wave_runner import WaveResult, WaveRunner
from grandlibrary.pipeline.waves import assign_waves, place_entry, validate_manifest
from grandlibrary.reconcile.engine import ReconciliationEngine
from grandlibrary.reconcile.graph import build_document_graph, downstream_documents
from grandlibrary.reconcile.resolution import FindingResolver
from grandlibrary.storage.artifacts import ArtifactRepository, render_manifest
from grandlibrary.storage.layout import Layout
from grandlibrary.storage.state_store import StateStore

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.dispatch.dispatcher import WorkerDispatcher
    from grandlibrary.storage.base_store import BaseRecordStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
R = TypeVar("R", bound=BaseModel)

BRIEF_UNIT = "project-brief"
SURVEY_UNIT = "survey"


@dataclass
class CommandResult:
    """Outcome of one orchestrator command."""

    state: SessionState
    notes: list[str] = field(default_factory=list)
    failures: list[GrandLibraryError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def list_project_tree(root: Path, max_entries: int, skip: tuple[str, ...] = ()) -> str:
    """Deterministic, bounded listing of a project tree (hidden entries skipped)."""
    lines: list[str] = []
    truncated = False
    for dirpath, dirnames, filenames in os.walk(root):
        rel = Path(dirpath).relative_to(root)
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and str(rel / d) not in skip
        )
        for name in sorted(dirnames):
            lines.append(f"{(rel / name).as_posix()}/")
        for name in sorted(f for f in filenames if not f.startswith(".")):
            lines.append((rel / name).as_posix())
        if len(lines) >= max_entries:
            truncated = True
            break
    lines = sorted(lines)[:max_entries]
    if truncated:
        lines.append(f"... (listing truncated at {max_entries} entries)")
    return "\n".join(lines)


def check_document(entry: ManifestEntry, document: GeneratedDocument | None) -> list[str]:
    """Structural problems that block approval of one document."""
    if document is None:
        return [f"{entry.id}: document is missing"]
    if not document.body.strip():
        return [f"{entry.id}: document body is empty"]
    present = {" ".join(t.lower().split()) for t in document.section_titles()}
    return [
        f"{entry.id}: section '{s}' is missing"
        for s in entry.sections
        if " ".join(s.lower().split()) not in present
    ]


def wave_status(state: SessionState, wave: int) -> str:
    units = state.units_in_wave(wave)
    if not units:
        return "empty"
    if all(u.status == "validated" for u in units.values()):
        return "validated"
    if state.awaiting_approval == wave:
        return "awaiting approval"
    if all(u.status == "pending" for u in units.values()):
        return "pending"
    return "in_progress"


def reopen(state: SessionState, phase: str) -> None:
    """Move a completed phase back to in_progress; later phases go to pending."""
    if state.phase(phase).status == "complete":
        state.phase(phase).status = "in_progress"
    for later in PHASES[PHASES.index(phase) + 1:]:
        state.phase(later).status = "pending"


def refresh_reconcile_counters(state: SessionState, report: ReconciliationReport) -> None:
    phase = state.phase("reconcile")
    counts = report.counts()
    fields = {
        "missing_decision_trace": "traces",
        "conflict": "conflicts",
        "gap": "gaps",
        "verification": "verification",
    }
    for kind, name in fields.items():
        setattr(phase, f"{name}_found", counts[kind]["found"])
        setattr(phase, f"{name}_resolved", counts[kind]["found"] - counts[kind]["open"])


# ----------------------------------------------------------------------
# Orchestrator
# ----------------------------------------------------------------------


class PhaseOrchestrator:
    """Top-level state machine over the four phases.

    Args:
        settings: Application settings.
        store: Record store rooted at the project root.
        dispatcher: Worker dispatcher for every generation job.
        sleep: Backoff sleep between attempts (tests pass a no-op).
    """

    def __init__(
        self,
        settings: Settings,
        store: BaseRecordStore,
        dispatcher: WorkerDispatcher,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._store = store
        self._layout = Layout.from_settings(settings)
        self._state_store = StateStore(store, self._layout)
        self._repo = ArtifactRepository(store, self._layout)
        self._budgeter = ContextBudgeter(settings)
        self._dispatcher = dispatcher
        self._sleep = sleep
        self._retry = RetryConfig.from_settings(settings)
        self._engine = ReconciliationEngine(settings, self._budgeter, dispatcher, sleep)
        self._resolver = FindingResolver(settings, self._repo, self._budgeter, dispatcher, sleep)

    @property
    def repo(self) -> ArtifactRepository:
        return self._repo

    @property
    def state_store(self) -> StateStore:
        return self._state_store

    async def load_state(self) -> SessionState:
        return await self._state_store.load()

    async def flush_calls(self) -> int:
        """Append this command's dispatch records to the calls log."""
        call_logger = self._dispatcher.call_logger
        if call_logger is None:
            return 0
        return await call_logger.flush(self._store, self._layout.calls_log)

    async def _begin(self, phase: str) -> SessionState:
        """Load state and enforce the guard for phase; nothing is written yet."""
        state = await self._state_store.load()
        require_ready(state, phase)
        set_session_context(state.project_name, phase)
        return state

    async def _save(self, state: SessionState) -> None:
        state.refresh_interview_counters()
        state.refresh_draft_counters()
        violations = state.check_phase_invariant()
        if violations:
            raise GrandLibraryError(
                "Refusing to save inconsistent session state: " + "; ".join(violations)
            )
        await self._state_store.save(state)

    async def _dispatch_json(
        self,
        role: str,
        instructions: str,
        packaged: PackagedContext,
        unit: str,
        model: type[R],
        validate: Callable[[R], None] | None = None,
        remedy: str = f"{CLI} status",
    ) -> R:
        """Dispatch with retry, parse into model and run an optional validator."""
        dispatcher = self._dispatcher

        async def attempt(n: int) -> R:
            text = await dispatcher.dispatch(instructions, packaged, role=role, unit=unit, attempt=n)
            result = parse_result(text, model)
            if validate is not None:
                validate(result)
            return result

        return await run_with_retry(attempt, unit, self._retry, remedy, sleep=self._sleep)

    def _compactor(self, project_name: str) -> Compactor:
        dispatcher = self._dispatcher
        budget = self._settings.brief_token_budget

        async def compact(brief: str) -> str:
            packaged = self._budgeter.select([brief_fragment(brief)])
            instructions = roles.instructions(
                roles.COMPACTOR, project_name=project_name, budget=budget
            )

            async def attempt(n: int) -> str:
                text = await dispatcher.dispatch(
                    instructions, packaged, role=roles.COMPACTOR, unit=BRIEF_UNIT, attempt=n
                )
                check_topic_headings(brief, text.strip() + "\n")
                return text

            return await run_with_retry(
                attempt, BRIEF_UNIT, self._retry, f"{CLI} status", sleep=self._sleep
            )

        return compact

    async def _store_brief(self, state: SessionState, brief: str) -> None:
        brief = await compact_brief(
            brief, self._settings.brief_token_budget, self._compactor(state.project_name)
        )
        key = await self._repo.write_brief(brief, state.project_name, estimate_tokens(brief))
        state.record_artifact(key)

    # ------------------------------------------------------------------
    # advance
    # ------------------------------------------------------------------

    async def advance(self, state: SessionState) -> SessionState:
        """Run the next unit of work for the first phase that is not complete.

        Returns the persisted state after that unit; a fully complete
        session is returned unchanged.
        """
        for name in PHASES:
            if state.phase(name).status != "complete":
                break
        else:
            return state
        if name == "survey":
            raise InvalidRequest(
                "Survey did not complete; it needs the project description again",
                remedy=PHASE_COMMANDS["survey"],
            )
        if name == "interview":
            result = await self.interview(resume=True)
        elif name == "draft":
            result = await self.draft()
        else:
            result = await self.reconcile()
        return result.state

    # ------------------------------------------------------------------
    # Survey
    # ------------------------------------------------------------------

    async def survey(
        self,
        mode: str = "greenfield",
        description: str = "",
        name: str | None = None,
    ) -> CommandResult:
        """Create the session, the brief, the topic list and the manifest."""
        if mode == "greenfield" and not description.strip():
            raise MissingArtifact("project description", PHASE_COMMANDS["survey"])
        if await self._state_store.exists():
            state = await self._state_store.load()
            if state.phase("survey").status == "complete":
                raise InvalidRequest(
                    f"Session '{state.project_name}' has already been surveyed",
                    remedy=next_command(state),
                )
            state.mode = mode  # type: ignore[assignment]
        else:
            state = await self._state_store.create(
                mode=mode, project_name=name or slugify(self._settings.root.resolve().name)
            )
        if name:
            state.project_name = name
        set_session_context(state.project_name, "survey")
        state.phase("survey").status = "in_progress"
        await self._save(state)

        fragments: list[Fragment] = [
            task_fragment("project-description", description.strip() or "(none given)")
        ]
        if mode == "existing":
            tree = list_project_tree(
                self._settings.root,
                self._settings.survey_tree_max_entries,
                skip=(self._layout.state_dir, self._layout.docs_dir),
            )
            fragments.append(other_fragment("project-tree", tree or "(empty)"))
        packaged = self._budgeter.select(fragments)
        instructions = roles.instructions(
            roles.SURVEYOR,
            project_name=state.project_name,
            mode=mode,
            brief_budget=self._settings.brief_token_budget,
        )

        def build_manifest(result: SurveyResult) -> DocumentManifest:
            # An omitted wave stays out of model_fields_set and is computed.
            entries = [ManifestEntry(**d.model_dump(exclude_none=True)) for d in result.documents]
            manifest = assign_waves(entries)
            validate_manifest(manifest, {t.slug for t in result.topics})
            return manifest

        def validate(result: SurveyResult) -> None:
            try:
                build_manifest(result)
            except (ManifestError, ValueError) as exc:
                raise WorkerOutputError(f"survey manifest is invalid: {exc}") from exc

        result: SurveyResult = await self._dispatch_json(
            roles.SURVEYOR, instructions, packaged, SURVEY_UNIT, SurveyResult, validate,
            remedy=PHASE_COMMANDS["survey"],
        )
        manifest = build_manifest(result)
        if not name and result.project_name:
            state.project_name = result.project_name

        await self._store_brief(state, result.brief)
        state.record_artifact(await self._repo.write_manifest(manifest))
        state.topics = [
            TopicState(
                slug=t.slug,
                title=t.title or t.slug,
                status="pending" if t.relevant else "skipped",
                skip_reason="" if t.relevant else (t.reason or "not relevant"),
            )
            for t in result.topics
        ]
        state.units = {e.id: UnitState(wave=e.wave) for e in manifest.entries}
        state.phase("survey").status = "complete"
        await self._save(state)
        logger.info(
            "Survey complete: %d topics, %d documents in %d waves",
            len(state.topics), len(manifest.entries), len(manifest.waves()),
        )
        return CommandResult(
            state=state,
            notes=[
                f"{len(state.topics)} topics, {len(manifest.entries)} documents "
                f"in {len(manifest.waves())} waves"
            ],
        )

    # ------------------------------------------------------------------
    # Interview
    # ------------------------------------------------------------------

    def _interview_validator(
        self, topic: str, doc_ids: set[str]
    ) -> Callable[[InterviewResult], None]:
        def validate(result: InterviewResult) -> None:
            seen: set[str] = set()
            for d in result.decisions:
                if d.id in seen:
                    raise WorkerOutputError(f"duplicate decision id '{d.id}' in topic {topic}")
                seen.add(d.id)
                unknown = sorted(set(d.affects_docs) - doc_ids)
                if unknown:
                    raise WorkerOutputError(
                        f"decision '{d.id}' affects unknown documents {unknown}"
                    )

        return validate

    async def _interview_topic(
        self,
        state: SessionState,
        topic: TopicState,
        answers: str | None,
        previous: DecisionRecord | None = None,
    ) -> DecisionRecord:
        """Dispatch one interviewer job and persist its record and brief lines."""
        manifest = await self._repo.require_manifest()
        brief = await self._repo.require_brief()
        earlier = [
            r for r in await self._repo.list_decision_records() if r.topic != topic.slug
        ]
        fragments: list[Fragment] = [brief_fragment(brief)]
        fragments += [decision_fragment(r, self._layout) for r in earlier]
        fragments.append(other_fragment("manifest", render_manifest(manifest)))
        if previous is not None:
            fragments.append(
                other_fragment(f"previous/{topic.slug}", decision_fragment(previous, self._layout).full)
            )
        if answers:
            fragments.append(task_fragment("operator-answers", answers))
        command = "update" if previous is not None else "interview"
        packaged = self._budgeter.select(fragments)
        instructions = roles.instructions(
            roles.INTERVIEWER,
            project_name=state.project_name,
            topic=topic.slug,
            topic_title=topic.title or topic.slug,
            doc_ids=", ".join(manifest.doc_ids),
        )
        result: InterviewResult = await self._dispatch_json(
            roles.INTERVIEWER,
            instructions,
            packaged,
            topic.slug,
            InterviewResult,
            self._interview_validator(topic.slug, set(manifest.doc_ids)),
            remedy=f"{CLI} {command} --topic {topic.slug}",
        )
        record = DecisionRecord(
            topic=topic.slug,
            title=result.title or topic.title or topic.slug,
            revision=(previous.revision + 1) if previous is not None else 1,
            decisions=result.decisions,
        )
        state.record_artifact(await self._repo.write_decision_record(record))
        await self._store_brief(state, set_topic_lines(brief, topic.slug, decision_lines(record)))
        return record

    async def _withdraw_decisions(self, state: SessionState, item: TopicState) -> list[str]:
        """Remove a skipped topic's record and brief section; reset what consumed them."""
        record = await self._repo.read_decision_record(item.slug)
        if record is None:
            return []
        key = await self._repo.delete_decision_record(item.slug)
        if key in state.artifacts:
            state.artifacts.remove(key)
        brief = await self._repo.read_brief()
        if brief is not None:
            await self._store_brief(state, remove_topic(brief, item.slug))
        item.decisions = 0
        if state.phase("reconcile").status == "complete":
            state.phase("reconcile").status = "in_progress"
        logger.info("Withdrew %d decisions of %s", len(record.decisions), item.slug)
        return await self._reset_units(state, record.affected_docs)

    async def interview(
        self,
        topic: str | None = None,
        resume: bool = False,
        answers: str | None = None,
        skip: str | None = None,
    ) -> CommandResult:
        """Interview topics strictly in order.

        With interview_pause_per_topic one topic is handled per call;
        otherwise every remaining topic is handled. `topic` selects a single
        pending topic, `skip` records a reason instead of interviewing.
        """
        state = await self._begin("interview")
        result = CommandResult(state=state)
        if state.phase("interview").status == "pending":
            state.phase("interview").status = "in_progress"

        if topic is not None:
            selected = state.topic(topic)
            if selected is None:
                raise InvalidRequest(
                    f"Unknown topic '{topic}' (known: {', '.join(t.slug for t in state.topics)})",
                    remedy=f"{CLI} status",
                )
            if selected.status in ("complete", "skipped") and skip is None:
                raise InvalidRequest(
                    f"Topic '{topic}' is already {selected.status}",
                    remedy=f"{CLI} update --topic {topic}",
                )
            queue = [selected]
        else:
            queue = [t for t in state.topics if t.status in ("pending", "in_progress")]
            if self._settings.interview_pause_per_topic or skip is not None:
                queue = queue[:1]
        if resume:
            logger.info("Resuming interview at %s", queue[0].slug if queue else "(done)")

        for item in queue:
            if skip is not None:
                item.status = "skipped"
                item.skip_reason = skip or "skipped by operator"
                result.notes.append(f"skipped {item.slug}: {item.skip_reason}")
                reset = await self._withdraw_decisions(state, item)
                if reset:
                    result.notes.append(f"reset for regeneration: {', '.join(reset)}")
                await self._save(state)
                continue
            item.status = "in_progress"
            await self._save(state)
            try:
                record = await self._interview_topic(state, item, answers)
            except UnitFailed as exc:
                item.status = "pending"
                await self._save(state)
                result.failures.append(exc)
                break
            item.status = "complete"
            item.decisions = len(record.decisions)
            await self._save(state)
            result.notes.append(f"{item.slug}: {len(record.decisions)} decisions")
            logger.info("Topic %s complete (%d decisions)", item.slug, len(record.decisions))

        if all(t.status in ("complete", "skipped") for t in state.topics):
            state.phase("interview").status = "complete"
            result.notes.append("interview complete")
        await self._save(state)
        return result

    # ------------------------------------------------------------------
    # Draft
    # ------------------------------------------------------------------

    def _sync_units(self, state: SessionState, manifest: DocumentManifest) -> None:
        for entry in manifest.entries:
            unit = state.units.get(entry.id)
            if unit is None:
                state.units[entry.id] = UnitState(wave=entry.wave)
            elif unit.wave != entry.wave:
                unit.wave = entry.wave
        for doc_id in sorted(set(state.units) - set(manifest.doc_ids)):
            logger.warning("Dropping unit %s: no longer in the manifest", doc_id)
            del state.units[doc_id]

    def _current_wave(self, state: SessionState) -> int | None:
        pending = [u.wave for u in state.units.values() if u.status != "validated"]
        return min(pending) if pending else None

    async def _reset_units(self, state: SessionState, doc_ids: set[str]) -> list[str]:
        """Send doc_ids and every document requiring them back to pending.

        A pending approval is withdrawn when a reset unit sits in its wave or
        an earlier one, so no wave clears ahead of an unvalidated one.
        """
        manifest = await self._repo.read_manifest()
        graph = build_document_graph(manifest) if manifest is not None else None
        cascade = set(doc_ids)
        if graph is not None:
            for doc_id in doc_ids:
                cascade.update(downstream_documents(graph, doc_id))
        reset = sorted(d for d in cascade if d in state.units)
        for doc_id in reset:
            unit = state.units[doc_id]
            unit.status = "pending"
            unit.attempts = 0
            unit.last_error = ""
            if state.awaiting_approval is not None and unit.wave <= state.awaiting_approval:
                state.awaiting_approval = None
        if reset and state.phase("draft").status != "pending":
            reopen(state, "draft")
        return reset

    async def _write_manifest_statuses(
        self, state: SessionState, manifest: DocumentManifest
    ) -> DocumentManifest:
        """Mirror unit progress into the manifest entry statuses."""
        entries = []
        changed = False
        for e in manifest.entries:
            unit = state.units[e.id]
            status = unit.status if unit.status in ("generated", "validated") else "pending"
            changed = changed or status != e.status
            entries.append(e.model_copy(update={"status": status}))
        updated = DocumentManifest(entries=entries)
        if changed:
            await self._repo.write_manifest(updated)
        return updated

    async def _approve(
        self, state: SessionState, manifest: DocumentManifest, wave: int
    ) -> list[str]:
        """Validate every document of wave; returns the blocking problems."""
        problems: list[str] = []
        for entry in manifest.waves().get(wave, []):
            problems += check_document(entry, await self._repo.read_document(entry.id))
        if problems:
            for entry in manifest.waves().get(wave, []):
                if any(p.startswith(f"{entry.id}:") for p in problems):
                    unit = state.units[entry.id]
                    unit.status = "pending"
                    unit.attempts = 0
                    unit.last_error = "rejected at approval: structural check failed"
            state.awaiting_approval = None
            logger.warning("Wave %d approval blocked: %s", wave, problems)
            return problems
        for entry in manifest.waves().get(wave, []):
            state.units[entry.id].status = "validated"
        state.awaiting_approval = None
        logger.info("Wave %d approved", wave)
        return []

    async def draft(
        self,
        wave: int | None = None,
        doc: str | None = None,
        approve: bool = False,
    ) -> CommandResult:
        """Generate documents wave by wave, gated by per-wave approval."""
        state = await self._begin("draft")
        manifest = await self._repo.require_manifest()
        validate_manifest(manifest, {t.slug for t in state.topics})
        self._sync_units(state, manifest)
        result = CommandResult(state=state)

        if approve:
            target = state.awaiting_approval
            if target is None:
                raise InvalidRequest("No wave is awaiting approval", remedy=next_command(state))
            current = self._current_wave(state)
            if current is not None and current < target:
                state.awaiting_approval = None
                await self._save(state)
                raise InvalidRequest(
                    f"Wave {target} cannot be approved: wave {current} is not validated",
                    remedy=f"{CLI} draft",
                )
            problems = await self._approve(state, manifest, target)
            if problems:
                await self._write_manifest_statuses(state, manifest)
                await self._save(state)
                raise InvalidRequest(
                    f"Wave {target} cannot be approved: " + "; ".join(problems),
                    remedy=f"{CLI} draft --wave {target}",
                )
            result.notes.append(f"wave {target} approved")
            if self._current_wave(state) is None:
                state.phase("draft").status = "complete"
                result.notes.append("draft complete")
            await self._write_manifest_statuses(state, manifest)
            await self._save(state)
            return result

        current = self._current_wave(state)
        if doc is not None:
            unit = state.units.get(doc)
            if unit is None:
                raise InvalidRequest(f"Unknown document '{doc}'", remedy=f"{CLI} status")
            if current is not None and unit.wave > current:
                raise InvalidRequest(
                    f"Document '{doc}' is in wave {unit.wave}; wave {current} is not validated",
                    remedy=next_command(state),
                )
            if state.awaiting_approval is not None and unit.wave != state.awaiting_approval:
                raise WaveAwaitingApproval(state.awaiting_approval)
        elif state.awaiting_approval is not None:
            raise WaveAwaitingApproval(state.awaiting_approval)

        if wave is not None and current is not None and wave > current:
            raise InvalidRequest(
                f"Wave {wave} is blocked: wave {current} is not validated yet",
                remedy=next_command(state),
            )

        if state.phase("draft").status == "pending":
            state.phase("draft").status = "in_progress"
        if doc is not None:
            unit = state.units[doc]
            if unit.status == "validated":
                reopen(state, "draft")
            unit.status = "pending"
            unit.attempts = 0
            unit.last_error = ""
            if state.awaiting_approval == unit.wave:
                state.awaiting_approval = None
            current = self._current_wave(state)
        await self._save(state)

        runner = WaveRunner(
            self._settings, self._repo, self._state_store, self._budgeter,
            self._dispatcher, sleep=self._sleep,
        )
        only = {doc} if doc is not None else None
        single = wave is not None or doc is not None
        target = state.units[doc].wave if doc is not None else (wave or current)

        while target is not None:
            outcome: WaveResult = await runner.run(state, manifest, target, only=only)
            result.failures.extend(outcome.failures)
            if outcome.generated:
                result.notes.append(f"wave {target}: generated {', '.join(outcome.generated)}")
            manifest = await self._write_manifest_statuses(state, manifest)

            units = state.units_in_wave(target)
            if not all(u.done for u in units.values()):
                break
            if all(u.status == "validated" for u in units.values()):
                pass
            elif self._settings.draft_auto_approve:
                problems = await self._approve(state, manifest, target)
                if problems:
                    result.notes.extend(problems)
                    break
                result.notes.append(f"wave {target} approved automatically")
                manifest = await self._write_manifest_statuses(state, manifest)
            else:
                state.awaiting_approval = target
                result.notes.append(f"wave {target} awaiting approval")
                break
            if single:
                break
            target = self._current_wave(state)

        if self._current_wave(state) is None:
            state.phase("draft").status = "complete"
            result.notes.append("draft complete")
        await self._save(state)
        return result

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def reconcile(self, recheck: bool = False) -> CommandResult:
        """Run the four passes (and worker review) over a fresh snapshot."""
        state = await self._begin("reconcile")
        result = CommandResult(state=state)
        previous = await self._repo.read_report()
        settled = state.phase("reconcile").status == "complete"
        if previous is not None and settled and not recheck:
            refresh_reconcile_counters(state, previous)
            result.notes.append(
                f"report run {previous.run} exists with {len(previous.open_findings)} "
                f"open findings; use --recheck to run again"
            )
            return result

        state.phase("reconcile").status = "in_progress"
        await self._save(state)

        snapshot = await self._repo.snapshot()
        run = previous.run + 1 if previous is not None else 1
        report = self._engine.run_passes(snapshot, run=run)
        state.record_artifact(await self._repo.write_report(report))

        try:
            report = await self._engine.review(
                snapshot, report, state.project_name, self._layout
            )
        except UnitFailed as exc:
            result.failures.append(exc)
        else:
            await self._repo.write_report(report)
            state.phase("reconcile").status = "complete"

        state.phase("reconcile").runs = run
        refresh_reconcile_counters(state, report)
        await self._save(state)
        result.notes.append(
            f"run {run}: {len(report.findings)} findings, {len(report.open_findings)} open"
        )
        return result

    async def resolve(
        self,
        finding_id: str,
        dismiss: str | None = None,
        note: str = "",
        target: str | None = None,
    ) -> CommandResult:
        """Resolve one finding of the current report."""
        state = await self._begin("reconcile")
        report = await self._repo.require_report()
        result = CommandResult(state=state)
        try:
            resolution = await self._resolver.resolve(
                report, finding_id, state.project_name,
                dismiss=dismiss, note=note, target=target,
            )
        except UnitFailed as exc:
            result.failures.append(exc)
            return result

        await self._repo.write_report(report)
        if resolution.document is not None:
            unit = state.units.get(resolution.document.doc_id)
            if unit is not None:
                unit.generation = resolution.document.generation
        if resolution.artifact is not None:
            state.record_artifact(resolution.artifact)
        refresh_reconcile_counters(state, report)
        await self._save(state)
        result.notes.append(
            f"{finding_id} {resolution.finding.status}"
            + (f" ({resolution.artifact})" if resolution.artifact else "")
        )
        return result

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def status(self) -> str:
        """Human-readable session status ending with the next command."""
        state = await self._state_store.load()
        phase, phase_status = state.current_phase()
        progress = ""
        if phase == "interview":
            p = state.phase("interview")
            progress = f" - {p.topics_completed}/{p.topics_total} topics"
        elif phase == "draft":
            p = state.phase("draft")
            progress = f" - wave {p.current_wave}/{p.waves_total}"
        lines = [
            f"▸ {state.project_name} - {phase} ({phase_status}){progress} - "
            f"updated {state.updated:%Y-%m-%d %H:%M}",
            "",
        ]
        for name in PHASES:
            lines.append(f"  {name:<10} {state.phase(name).status}")

        if state.topics:
            lines.append("")
            lines.append("Topics:")
            for t in state.topics:
                extra = f" ({t.skip_reason})" if t.status == "skipped" else ""
                lines.append(f"  {t.slug:<24} {t.status}{extra}")

        waves = sorted({u.wave for u in state.units.values()})
        for w in waves:
            lines.append("")
            lines.append(f"Wave {w}: {wave_status(state, w)}")
            for doc_id, unit in sorted(state.units_in_wave(w).items()):
                detail = f" (attempt {unit.attempts})" if unit.attempts else ""
                if unit.last_error and not unit.done:
                    detail += f" last error: {unit.last_error}"
                lines.append(f"  {doc_id:<24} {unit.display_status}{detail}")

        report = await self._repo.read_report()
        if report is not None:
            lines.append("")
            lines.append(f"Reconciliation run {report.run}:")
            for kind, c in report.counts().items():
                lines.append(f"  {kind:<24} {c['open']} open / {c['found']} found")

        lines.append("")
        lines.append(f"next: {next_command(state)}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Add / update
    # ------------------------------------------------------------------

    async def add(
        self,
        doc_type: str,
        title: str,
        requires: list[str] | None = None,
    ) -> CommandResult:
        """Add a document to the manifest at the earliest wave it can join."""
        state = await self._begin("interview")
        manifest = await self._repo.require_manifest()
        doc_id = slugify(title)
        n = 2
        while manifest.entry(doc_id) is not None:
            doc_id = f"{slugify(title)}-{n}"
            n += 1
        entry = ManifestEntry(id=doc_id, title=title, doc_type=doc_type, requires=requires or [])
        updated = place_entry(manifest, entry)
        validate_manifest(updated, {t.slug for t in state.topics})
        wave = next(e.wave for e in updated.entries if e.id == doc_id)

        await self._repo.write_manifest(updated)
        state.units[doc_id] = UnitState(wave=wave)
        await self._reset_units(state, {doc_id})
        await self._save(state)
        logger.info("Added %s to wave %d", doc_id, wave)
        return CommandResult(state=state, notes=[f"added {doc_id} to wave {wave}"])

    async def update(self, topic: str, note: str = "") -> CommandResult:
        """Re-interview a topic and cascade to every affected document."""
        state = await self._begin("interview")
        item = state.topic(topic)
        if item is None:
            raise InvalidRequest(f"Unknown topic '{topic}'", remedy=f"{CLI} status")
        if item.status not in ("complete", "skipped"):
            raise InvalidRequest(
                f"Topic '{topic}' has not been interviewed yet",
                remedy=f"{CLI} interview --topic {topic}",
            )
        previous = await self._repo.read_decision_record(topic)
        result = CommandResult(state=state)
        try:
            record = await self._interview_topic(state, item, note or None, previous=previous)
        except UnitFailed as exc:
            result.failures.append(exc)
            return result

        item.status = "complete"
        item.skip_reason = ""
        item.decisions = len(record.decisions)
        affected = (previous.affected_docs if previous else set()) | record.affected_docs
        reset = await self._reset_units(state, affected)
        await self._save(state)
        result.notes.append(f"{topic} revision {record.revision}")
        if reset:
            result.notes.append(f"reset for regeneration: {', '.join(reset)}")
        return result
