# src/reconcile/engine.py - v1
"""Reconciliation engine: four passes over one snapshot, plus optional review.

reconcile(decisions, manifest, documents) -> ReconciliationReport

The passes are pure and deterministic. The optional worker review (role
"reconciler") reads a budgeted package of the same snapshot and contributes
conflicts and gaps tagged origin="worker". Findings are de-duplicated by id
and sorted by kind, then id.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from grandlibrary.context.fragments import (
    brief_fragment,
    decision_fragment,
    document_fragment,
    other_fragment,
    task_fragment,
)
from grandlibrary.core.errors import CLI
from grandlibrary.core.models import (
    FINDING_KINDS,
    Conflict,
    DecisionRecord,
    DocumentManifest,
    Finding,
    Gap,
    GeneratedDocument,
    ReconciliationReport,
)
from grandlibrary.core.text import short_hash
from grandlibrary.dispatch import roles
from grandlibrary.dispatch.parsing import ReviewResult, parse_result
from grandlibrary.llm.retry import RetryConfig
from grandlibrary.pipeline.retrying import run_with_retry
from grandlibrary.reconcile.graph import build_artifact_graph
from grandlibrary.reconcile.passes import (
    completeness_pass,
    consistency_pass,
    gap_pass,
    verification_pass,
)
from grandlibrary.storage.artifacts import ArtifactSnapshot, render_manifest

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.context.budgeter import ContextBudgeter, Fragment
    from grandlibrary.dispatch.dispatcher import WorkerDispatcher
    from grandlibrary.storage.layout import Layout

logger = logging.getLogger(__name__)

REVIEW_UNIT = "reconcile-review"


def snapshot_hash(snapshot: ArtifactSnapshot) -> str:
    """Stable digest of every artifact in the snapshot."""
    payload = {
        "brief": snapshot.brief,
        "decisions": [r.model_dump(mode="json") for r in snapshot.decisions],
        "manifest": snapshot.manifest.model_dump(mode="json"),
        "documents": {k: v.model_dump(mode="json") for k, v in snapshot.documents.items()},
    }
    return short_hash(json.dumps(payload, sort_keys=True), length=16)


def merge_findings(findings: list[Finding]) -> list[Finding]:
    """De-duplicate by id (first wins) and sort by kind order, then id."""
    unique: dict[str, Finding] = {}
    for f in findings:
        unique.setdefault(f.id, f)
    order = {kind: i for i, kind in enumerate(FINDING_KINDS)}
    return sorted(unique.values(), key=lambda f: (order[f.kind], f.id))


class ReconciliationEngine:
    """Run the reconciliation passes and the optional worker review.

    Args:
        settings: Application settings.
        budgeter: Context budgeter for the review package.
        dispatcher: Worker dispatcher; None disables the review.
        sleep: Backoff sleep between review attempts.
    """

    def __init__(
        self,
        settings: Settings,
        budgeter: ContextBudgeter | None = None,
        dispatcher: WorkerDispatcher | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._budgeter = budgeter
        self._dispatcher = dispatcher
        self._sleep = sleep

    @property
    def review_enabled(self) -> bool:
        return (
            self._settings.reconcile_worker_review
            and self._dispatcher is not None
            and self._budgeter is not None
        )

    def reconcile(
        self,
        decisions: list[DecisionRecord],
        manifest: DocumentManifest,
        documents: dict[str, GeneratedDocument],
        brief: str = "",
        run: int = 1,
    ) -> ReconciliationReport:
        """Run all four passes over the given artifacts."""
        snapshot = ArtifactSnapshot(
            brief=brief,
            decisions=tuple(sorted(decisions, key=lambda r: r.topic)),
            manifest=manifest,
            documents=dict(sorted(documents.items())),
        )
        return self.run_passes(snapshot, run)

    def run_passes(self, snapshot: ArtifactSnapshot, run: int = 1) -> ReconciliationReport:
        """Run all four passes against one snapshot."""
        graph = build_artifact_graph(snapshot)
        findings: list[Finding] = []
        findings.extend(completeness_pass(snapshot, graph))
        findings.extend(consistency_pass(snapshot))
        findings.extend(gap_pass(snapshot, graph))
        findings.extend(verification_pass(snapshot))
        report = ReconciliationReport(
            run=run,
            snapshot_hash=snapshot_hash(snapshot),
            findings=merge_findings(findings),
        )
        logger.info(
            "Reconciliation run %d: %s",
            run,
            ", ".join(f"{k}={v['found']}" for k, v in report.counts().items()),
        )
        return report

    # ------------------------------------------------------------------
    # Worker review
    # ------------------------------------------------------------------

    def _review_fragments(
        self, snapshot: ArtifactSnapshot, report: ReconciliationReport, layout: Layout
    ) -> list[Fragment]:
        listed = "\n".join(f"- {f.id}: {f.describe()}" for f in report.findings) or "- none"
        fragments: list[Fragment] = [
            task_fragment("automated-findings", "Automated checks already report:\n" + listed),
            brief_fragment(snapshot.brief),
            other_fragment("manifest", render_manifest(snapshot.manifest)),
        ]
        fragments += [decision_fragment(r, layout) for r in snapshot.decisions]
        fragments += [
            document_fragment(d, layout, self._settings.summary_max_tokens)
            for d in snapshot.documents.values()
        ]
        return fragments

    def _worker_findings(self, result: ReviewResult, snapshot: ArtifactSnapshot) -> list[Finding]:
        known = set(snapshot.manifest.doc_ids) | set(snapshot.documents)
        findings: list[Finding] = []
        for c in result.conflicts:
            if c.doc_a not in known or c.doc_b not in known or c.doc_a == c.doc_b:
                logger.warning("Dropping review conflict on unknown documents: %s/%s", c.doc_a, c.doc_b)
                continue
            findings.append(
                Conflict(
                    doc_a=c.doc_a, doc_b=c.doc_b, subject=c.subject,
                    description=c.description, origin="worker",
                )
            )
        for g in result.gaps:
            if g.location.split("#", 1)[0] not in known:
                logger.warning("Dropping review gap at unknown location: %s", g.location)
                continue
            findings.append(Gap(location=g.location, description=g.description, origin="worker"))
        return findings

    async def review(
        self,
        snapshot: ArtifactSnapshot,
        report: ReconciliationReport,
        project_name: str,
        layout: Layout,
    ) -> ReconciliationReport:
        """Merge worker-found conflicts and gaps into report.

        Raises:
            UnitFailed: When every review attempt fails.
            ContextOverflow: When the snapshot cannot be packaged.
        """
        budgeter, dispatcher = self._budgeter, self._dispatcher
        if not self.review_enabled or budgeter is None or dispatcher is None:
            return report
        packaged = budgeter.select(self._review_fragments(snapshot, report, layout))
        instructions = roles.instructions(roles.RECONCILER, project_name=project_name)

        async def attempt(n: int) -> ReviewResult:
            text = await dispatcher.dispatch(
                instructions, packaged, role=roles.RECONCILER, unit=REVIEW_UNIT, attempt=n
            )
            return parse_result(text, ReviewResult)

        result = await run_with_retry(
            attempt,
            REVIEW_UNIT,
            RetryConfig.from_settings(self._settings),
            remedy=f"{CLI} reconcile --recheck",
            sleep=self._sleep,
        )
        extra = self._worker_findings(result, snapshot)
        logger.info("Worker review added %d findings", len(extra))
        return report.model_copy(
            update={"findings": merge_findings([*report.findings, *extra])}
        )
