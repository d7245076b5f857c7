# tests/unit/reconcile/test_finding_resolution.py - v1
"""Tests for reconcile/resolution.py - dismissal, flag clearing, regeneration."""

from __future__ import annotations

import pytest

from grandlibrary.context.budgeter import ContextBudgeter
from grandlibrary.core.errors import UnknownFinding, UnresolvableFinding
from grandlibrary.core.models import (
    Conflict,
    Gap,
    GeneratedDocument,
    ReconciliationReport,
    VerificationItem,
)
from grandlibrary.reconcile.resolution import FindingResolver


@pytest.fixture
def resolver(settings, repo, dispatcher, no_sleep) -> FindingResolver:
    return FindingResolver(settings, repo, ContextBudgeter(settings), dispatcher, sleep=no_sleep)


@pytest.fixture
def conflict_report() -> ReconciliationReport:
    return ReconciliationReport(findings=[
        Conflict(doc_a="architecture", doc_b="operations", subject="Backups",
                 description="nightly vs hourly"),
        Gap(location="api-reference#errors", description="declared section 'Errors' is missing"),
    ])


class TestDismiss:
    @pytest.mark.asyncio
    async def test_dismiss_touches_no_artifact(self, resolver, seed_session, conflict_report, llm):
        await seed_session("draft")
        finding_id = conflict_report.findings[0].id
        resolution = await resolver.resolve(
            conflict_report, finding_id, "ledger", dismiss="intentional difference",
        )
        assert resolution.artifact is None
        assert conflict_report.finding(finding_id).status == "dismissed"
        assert conflict_report.finding(finding_id).resolution_note == "intentional difference"
        assert conflict_report.findings[1].is_open
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_closed_finding_returned_unchanged(self, resolver, seed_session, conflict_report):
        await seed_session("draft")
        finding = conflict_report.findings[0]
        await resolver.resolve(conflict_report, finding.id, "ledger", dismiss="no")
        again = await resolver.resolve(conflict_report, finding.id, "ledger", note="later")
        assert again.finding.status == "dismissed"
        assert again.finding.resolution_note == "no"

    @pytest.mark.asyncio
    async def test_unknown(self, resolver, seed_session, conflict_report):
        await seed_session("draft")
        with pytest.raises(UnknownFinding):
            await resolver.resolve(conflict_report, "C-nope", "ledger")


class TestClearVerification:
    @pytest.mark.asyncio
    async def test_decision_flag(self, resolver, repo, seed_session):
        await seed_session("draft")
        item = VerificationItem(source="decision:api/api-1", item="REST over HTTPS")
        report = ReconciliationReport(findings=[item])
        resolution = await resolver.resolve(report, item.id, "ledger")

        record = await repo.require_decision_record("api")
        assert record.decision("api-1").needs_verification is False
        assert record.decision("api-1").verification_note == ""
        assert resolution.artifact == repo.layout.decision("api")
        assert report.findings[0].status == "resolved"
        assert report.findings[0].resolution_note == "verified"

    @pytest.mark.asyncio
    async def test_inline_marker(self, resolver, repo, seed_session):
        await seed_session("draft")
        await repo.write_document(GeneratedDocument(
            doc_id="api-reference", title="API Reference",
            body="Uses TLS [NEEDS VERIFICATION: cipher suite] everywhere.",
        ))
        item = VerificationItem(source="doc:api-reference", item="cipher suite", note="inline")
        report = ReconciliationReport(findings=[item])
        await resolver.resolve(report, item.id, "ledger", note="checked with ops")

        document = await repo.require_document("api-reference")
        assert document.body == "Uses TLS everywhere."
        assert report.findings[0].resolution_note == "checked with ops"

    @pytest.mark.asyncio
    async def test_header_flag(self, resolver, repo, seed_session):
        await seed_session("draft")
        flag = "api-1: confirm client TLS support"
        await repo.write_document(GeneratedDocument(
            doc_id="api-reference", title="API Reference", body="Body.",
            verification_flags=[flag, "other"],
        ))
        item = VerificationItem(source="doc:api-reference", item=flag)
        await resolver.resolve(ReconciliationReport(findings=[item]), item.id, "ledger")
        assert (await repo.require_document("api-reference")).verification_flags == ["other"]


class TestRegenerate:
    @pytest.mark.asyncio
    async def test_regenerates_named_target_only(self, resolver, repo, seed_session,
                                                 conflict_report, llm):
        await seed_session("draft")
        conflict, gap = conflict_report.findings
        resolution = await resolver.resolve(
            conflict_report, conflict.id, "ledger", note="hourly", target="operations",
        )

        assert llm.units_called("fixer") == ["operations"]
        assert "Operator note: hourly" in llm.calls_for("fixer")[0].system
        assert resolution.document.generation == 2
        assert (await repo.require_document("operations")).generation == 2
        assert (await repo.require_document("architecture")).generation == 1
        assert conflict_report.finding(conflict.id).status == "resolved"
        assert conflict_report.finding(gap.id).is_open

    @pytest.mark.asyncio
    async def test_default_target_is_first_document(self, resolver, seed_session,
                                                    conflict_report, llm):
        await seed_session("draft")
        await resolver.resolve(conflict_report, conflict_report.findings[0].id, "ledger")
        assert llm.units_called("fixer") == ["architecture"]

    @pytest.mark.asyncio
    async def test_target_outside_finding(self, resolver, seed_session, conflict_report, llm):
        await seed_session("draft")
        with pytest.raises(UnresolvableFinding) as exc_info:
            await resolver.resolve(
                conflict_report, conflict_report.findings[0].id, "ledger", target="api-reference",
            )
        assert "--target architecture" in exc_info.value.remedy
        assert conflict_report.findings[0].is_open
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_decision_record_gap(self, resolver, seed_session):
        await seed_session("draft")
        gap = Gap(location="decisions/storage#storage-1",
                  description="decision affects 'ghost', which is not a planned document")
        with pytest.raises(UnresolvableFinding) as exc_info:
            await resolver.resolve(ReconciliationReport(findings=[gap]), gap.id, "ledger")
        assert "update --topic storage" in exc_info.value.remedy

    @pytest.mark.asyncio
    async def test_missing_document_is_drafted(self, resolver, repo, seed_session, llm):
        await seed_session("interview")
        gap = Gap(location="operations", description="planned document has not been generated")
        resolution = await resolver.resolve(ReconciliationReport(findings=[gap]), gap.id, "ledger")
        assert resolution.document.generation == 1
        assert llm.units_called("drafter") == ["operations"]
        assert (await repo.require_document("operations")).decisions_consumed == ["storage/storage-1"]
