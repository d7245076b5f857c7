# tests/unit/reconcile/test_reconcile_engine.py - v1
"""Tests for reconcile/engine.py - pass orchestration, merging and worker review."""

from __future__ import annotations

import json

import pytest

from grandlibrary.context.budgeter import ContextBudgeter
from grandlibrary.core.errors import UnitFailed
from grandlibrary.core.models import Conflict, Gap, GeneratedDocument
from grandlibrary.reconcile.engine import ReconciliationEngine, merge_findings, snapshot_hash


def _fenced(payload) -> str:
    return "```json\n" + json.dumps(payload) + "\n```"


class TestRunPasses:
    @pytest.mark.asyncio
    async def test_sample_suite(self, settings, repo, seed_session):
        await seed_session("draft")
        report = ReconciliationEngine(settings).run_passes(await repo.snapshot(), run=3)
        assert report.run == 3
        assert report.counts()["verification"] == {"found": 1, "open": 1}
        assert report.counts()["conflict"]["found"] == 0
        assert report.counts()["gap"]["found"] == 0
        assert report.counts()["missing_decision_trace"]["found"] == 0

    @pytest.mark.asyncio
    async def test_snapshot_isolation(self, settings, repo, seed_session):
        await seed_session("draft")
        engine = ReconciliationEngine(settings)
        snapshot = await repo.snapshot()
        before = engine.run_passes(snapshot)

        await repo.write_document(
            GeneratedDocument(doc_id="operations", title="Operations", body="**Database**: MySQL")
        )
        after = engine.run_passes(snapshot)
        assert after.model_dump() == before.model_dump()

        fresh = engine.run_passes(await repo.snapshot())
        assert fresh.snapshot_hash != before.snapshot_hash
        assert fresh.counts()["conflict"]["found"] == 1

    def test_deterministic_regardless_of_input_order(
        self, settings, sample_records, sample_manifest, sample_documents
    ):
        engine = ReconciliationEngine(settings)
        forward = engine.reconcile(sample_records, sample_manifest, sample_documents)
        backward = engine.reconcile(
            list(reversed(sample_records)),
            sample_manifest,
            dict(reversed(list(sample_documents.items()))),
        )
        assert forward.model_dump() == backward.model_dump()


class TestMergeFindings:
    def test_dedup_and_order(self):
        gap = Gap(location="a", description="missing")
        conflict = Conflict(doc_a="a", doc_b="b", description="x")
        duplicate = Gap(location="a", description="missing", origin="worker")
        merged = merge_findings([gap, conflict, duplicate])
        assert [f.kind for f in merged] == ["conflict", "gap"]
        assert merged[1].origin == "engine"


class TestWorkerReview:
    def _engine(self, settings, dispatcher, no_sleep, enabled=True):
        s = settings.model_copy(update={"reconcile_worker_review": enabled})
        return ReconciliationEngine(s, ContextBudgeter(s), dispatcher, sleep=no_sleep)

    @pytest.mark.asyncio
    async def test_disabled_returns_report_unchanged(
        self, settings, repo, layout, seed_session, dispatcher, no_sleep, llm
    ):
        await seed_session("draft")
        engine = self._engine(settings, dispatcher, no_sleep, enabled=False)
        snapshot = await repo.snapshot()
        report = engine.run_passes(snapshot)
        assert await engine.review(snapshot, report, "ledger", layout) is report
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_merges_worker_findings(
        self, settings, repo, layout, seed_session, dispatcher, no_sleep, llm
    ):
        await seed_session("draft")
        llm.responses["reconciler"] = _fenced({
            "conflicts": [
                {"doc_a": "architecture", "doc_b": "operations", "subject": "Backups",
                 "description": "nightly vs hourly"},
                {"doc_a": "architecture", "doc_b": "ghost", "description": "unknown"},
            ],
            "gaps": [
                {"location": "operations#rollback", "description": "no rollback procedure"},
                {"location": "nowhere", "description": "dropped"},
            ],
        })
        engine = self._engine(settings, dispatcher, no_sleep)
        snapshot = await repo.snapshot()
        report = await engine.review(snapshot, engine.run_passes(snapshot), "ledger", layout)

        worker = [f for f in report.findings if f.origin == "worker"]
        assert {f.kind for f in worker} == {"conflict", "gap"}
        assert len(worker) == 2
        assert report.counts()["verification"]["found"] == 1
        assert llm.units_called("reconciler") == [""]

    @pytest.mark.asyncio
    async def test_unparseable_review_fails(
        self, settings, repo, layout, seed_session, dispatcher, no_sleep, llm
    ):
        await seed_session("draft")
        llm.responses["reconciler"] = "I found nothing worth reporting."
        engine = self._engine(settings, dispatcher, no_sleep)
        snapshot = await repo.snapshot()
        with pytest.raises(UnitFailed):
            await engine.review(snapshot, engine.run_passes(snapshot), "ledger", layout)
        assert len(llm.calls_for("reconciler")) == settings.dispatch_max_attempts


class TestSnapshotHash:
    @pytest.mark.asyncio
    async def test_stable(self, repo, seed_session):
        await seed_session("draft")
        assert snapshot_hash(await repo.snapshot()) == snapshot_hash(await repo.snapshot())
