# tests/integration/pipeline/test_int_session_flow.py - v1
"""Integration tests for a whole documentation session.

Covers: pipeline/orchestrator.py, pipeline/wave_runner.py, reconcile/,
        storage/artifacts.py, storage/state_store.py, tracking/call_logger.py

No network access - every worker call goes to the scripted client from conftest.
"""

from __future__ import annotations

import json

import pytest

from grandlibrary.core.errors import NoSessionFound
from grandlibrary.pipeline.orchestrator import PhaseOrchestrator


def _fenced(payload) -> str:
    return "```json\n" + json.dumps(payload) + "\n```"


class TestFullSession:
    @pytest.mark.asyncio
    async def test_survey_to_reconcile(self, orchestrator, repo, state_store, llm):
        await orchestrator.survey(description="A small bookkeeping service.")
        await orchestrator.interview()
        await orchestrator.draft()
        await orchestrator.draft(approve=True)
        await orchestrator.draft()
        await orchestrator.draft(approve=True)
        result = await orchestrator.reconcile()

        state = await state_store.load()
        assert [state.phase(p).status for p in ("survey", "interview", "draft", "reconcile")] == [
            "complete"
        ] * 4
        assert state.check_phase_invariant() == []
        assert (await repo.list_document_ids()) == ["api-reference", "architecture", "operations"]
        manifest = await repo.require_manifest()
        assert {e.status for e in manifest.entries} == {"validated"}

        # api-1 carries a verification flag into its decision and its document.
        report = await repo.require_report()
        assert report.counts()["verification"] == {"found": 2, "open": 2}
        assert result.ok
        assert (await orchestrator.status()).endswith("next: grandlib reconcile --recheck")

        assert [c.role for c in llm.calls] == [
            "surveyor", "interviewer", "interviewer",
            "drafter", "drafter", "drafter",
        ]

    @pytest.mark.asyncio
    async def test_update_cascades_through_redraft(self, orchestrator, repo, state_store, llm):
        await orchestrator.survey(description="A small bookkeeping service.")
        await orchestrator.interview()
        for _ in range(2):
            await orchestrator.draft()
            await orchestrator.draft(approve=True)
        await orchestrator.reconcile()

        llm.responses["interviewer"] = {"storage": _fenced({"decisions": [{
            "id": "storage-1", "title": "Database", "chosen": "PostgreSQL 16",
            "rationale": "Unchanged.", "affects_docs": ["architecture", "operations"],
        }]})}
        await orchestrator.update("storage", note="re-confirm")
        state = await state_store.load()
        assert state.phase("reconcile").status == "pending"
        assert state.awaiting_approval is None

        await orchestrator.draft()
        await orchestrator.draft(approve=True)
        await orchestrator.draft()
        await orchestrator.draft(approve=True)
        result = await orchestrator.reconcile()

        assert (await repo.require_report()).run == 2
        assert result.state.units["architecture"].generation == 2
        assert result.state.units["api-reference"].generation == 1
        assert (await repo.require_decision_record("storage")).revision == 2

    @pytest.mark.asyncio
    async def test_resume_after_interrupted_wave(
        self, settings, store, dispatcher, no_sleep, orchestrator, state_store, llm
    ):
        await orchestrator.survey(description="A small bookkeeping service.")
        await orchestrator.interview()
        llm.fail_plan["architecture"] = 3
        first = await orchestrator.draft()
        assert not first.ok

        # A new orchestrator reads everything back from the project root.
        fresh = PhaseOrchestrator(settings, store, dispatcher, sleep=no_sleep)
        status = await fresh.status()
        assert "failed" in status
        assert status.endswith("next: grandlib draft --doc architecture")

        await fresh.draft(doc="architecture")
        state = await state_store.load()
        assert state.awaiting_approval == 1
        assert llm.units_called("drafter").count("api-reference") == 1

    @pytest.mark.asyncio
    async def test_calls_log(self, settings, layout, orchestrator, llm):
        await orchestrator.survey(description="A small bookkeeping service.")
        await orchestrator.interview()
        written = await orchestrator.flush_calls()
        assert written == len(llm.calls) == 3

        lines = (settings.root / layout.calls_log).read_text().splitlines()
        records = [json.loads(line) for line in lines]
        assert [r["role"] for r in records] == ["surveyor", "interviewer", "interviewer"]
        assert {r["status"] for r in records} == {"success"}

    @pytest.mark.asyncio
    async def test_no_session(self, orchestrator):
        with pytest.raises(NoSessionFound):
            await orchestrator.reconcile()
