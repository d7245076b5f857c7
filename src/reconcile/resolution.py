# src/reconcile/resolution.py - v1
"""Finding resolution: mutate exactly the named artifact, flip one finding.

Three ways to resolve an open finding:
  - dismiss with a reason (no artifact changes);
  - verification items: clear the flag or inline marker at its source;
  - document-targeted findings: regenerate the target document through the
    fixer role, with the finding in the instructions.

Other findings are never touched, even when a regeneration happens to fix
them; a recheck reports the new state.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from grandlibrary.context.fragments import other_fragment
from grandlibrary.core.errors import CLI, UnknownFinding, UnresolvableFinding
from grandlibrary.core.models import Finding, GeneratedDocument, ReconciliationReport, VerificationItem
from grandlibrary.dispatch import roles
from grandlibrary.dispatch.parsing import extract_markdown
from grandlibrary.llm.retry import RetryConfig
from grandlibrary.pipeline.retrying import run_with_retry
from grandlibrary.pipeline.wave_runner import (
    decisions_for,
    document_fragments,
    drafter_instructions,
    verification_flags_for,
)

if TYPE_CHECKING:
    from grandlibrary.config.settings import Settings
    from grandlibrary.context.budgeter import ContextBudgeter
    from grandlibrary.dispatch.dispatcher import WorkerDispatcher
    from grandlibrary.storage.artifacts import ArtifactRepository

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """What a resolve call changed."""

    finding: Finding
    artifact: str | None = None
    document: GeneratedDocument | None = None


def _marker_re(item: str) -> re.Pattern[str]:
    return re.compile(
        r"\s?\[NEEDS VERIFICATION:\s*" + re.escape(item) + r"\s*\]", re.IGNORECASE
    )


class FindingResolver:
    """Apply one resolution to one finding of the current report."""

    def __init__(
        self,
        settings: Settings,
        repo: ArtifactRepository,
        budgeter: ContextBudgeter,
        dispatcher: WorkerDispatcher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._repo = repo
        self._budgeter = budgeter
        self._dispatcher = dispatcher
        self._sleep = sleep

    async def resolve(
        self,
        report: ReconciliationReport,
        finding_id: str,
        project_name: str,
        dismiss: str | None = None,
        note: str = "",
        target: str | None = None,
    ) -> Resolution:
        """Resolve finding_id in report (mutated in place).

        Raises:
            UnknownFinding: If the report has no such finding.
            UnresolvableFinding: If no artifact can be regenerated for it.
            UnitFailed: If the regeneration exhausts its attempts.
        """
        finding = report.finding(finding_id)
        if finding is None:
            raise UnknownFinding(finding_id)
        if not finding.is_open:
            logger.info("Finding %s is already %s", finding_id, finding.status)
            return Resolution(finding=finding)

        if dismiss is not None:
            finding.status = "dismissed"
            finding.resolution_note = dismiss or "dismissed"
            logger.info("Dismissed %s: %s", finding_id, finding.resolution_note)
            return Resolution(finding=finding)

        if isinstance(finding, VerificationItem):
            artifact = await self._clear_verification(finding)
            finding.status = "resolved"
            finding.resolution_note = note or "verified"
            return Resolution(finding=finding, artifact=artifact)

        document = await self._regenerate(finding, project_name, note, target)
        finding.status = "resolved"
        finding.resolution_note = note or (
            f"regenerated {document.doc_id} (generation {document.generation})"
        )
        return Resolution(
            finding=finding,
            artifact=self._repo.layout.document(document.doc_id),
            document=document,
        )

    # ------------------------------------------------------------------
    # Verification items
    # ------------------------------------------------------------------

    async def _clear_verification(self, item: VerificationItem) -> str:
        kind, _, ref = item.source.partition(":")
        if kind == "decision":
            topic, _, decision_id = ref.partition("/")
            record = await self._repo.require_decision_record(topic)
            decision = record.decision(decision_id)
            if decision is None:
                raise UnresolvableFinding(
                    item.id, f"decision {decision_id} no longer exists",
                    remedy=f"{CLI} reconcile --recheck",
                )
            decision.needs_verification = False
            decision.verification_note = ""
            key = await self._repo.write_decision_record(record)
            logger.info("Cleared verification flag on %s/%s", topic, decision_id)
            return key

        document = await self._repo.require_document(ref)
        if item.note == "inline":
            body = _marker_re(item.item).sub("", document.body)
            updated = document.model_copy(update={"body": body})
        else:
            flags = [f for f in document.verification_flags if f != item.item]
            updated = document.model_copy(update={"verification_flags": flags})
        key = await self._repo.write_document(updated)
        logger.info("Cleared verification marker in %s", ref)
        return key

    # ------------------------------------------------------------------
    # Regeneration
    # ------------------------------------------------------------------

    def _target_of(self, finding: Finding, target: str | None) -> str:
        if finding.kind == "gap" and finding.location.startswith("decisions/"):
            topic = finding.location.split("/", 1)[1].split("#", 1)[0]
            raise UnresolvableFinding(
                finding.id, "it concerns a decision record, not a document",
                remedy=f"{CLI} update --topic {topic}",
            )
        targets = finding.targets
        if target is None:
            return targets[0]
        if target not in targets:
            raise UnresolvableFinding(
                finding.id, f"'{target}' is not one of its documents {targets}",
                remedy=f"{CLI} reconcile --resolve {finding.id} --target {targets[0]}",
            )
        return target

    async def _regenerate(
        self, finding: Finding, project_name: str, note: str, target: str | None
    ) -> GeneratedDocument:
        doc_id = self._target_of(finding, target)
        manifest = await self._repo.require_manifest()
        entry = manifest.entry(doc_id)
        if entry is None:
            raise UnresolvableFinding(
                finding.id, f"'{doc_id}' is not a planned document",
                remedy=f"{CLI} add --type doc --title <title>",
            )
        brief = await self._repo.require_brief()
        records = await self._repo.list_decision_records()
        documents: dict[str, GeneratedDocument] = {}
        for other in manifest.doc_ids:
            doc = await self._repo.read_document(other)
            if doc is not None:
                documents[other] = doc
        current = documents.get(doc_id)

        fragments = document_fragments(
            entry, manifest, brief, records, documents, self._settings, self._repo.layout
        )
        if current is not None:
            fragments.append(other_fragment(f"current/{doc_id}", current.body))
            instructions = roles.instructions(
                roles.FIXER,
                project_name=project_name,
                title=entry.title,
                doc_id=doc_id,
                finding=f"{finding.id}: {finding.describe()}",
                note=f"Operator note: {note}" if note else "",
            )
        else:
            instructions = drafter_instructions(entry, project_name)
        packaged = self._budgeter.select(fragments)
        dispatcher = self._dispatcher

        async def attempt(n: int) -> str:
            text = await dispatcher.dispatch(
                instructions, packaged, role=roles.FIXER, unit=doc_id, attempt=n
            )
            return extract_markdown(text)

        body = await run_with_retry(
            attempt,
            doc_id,
            RetryConfig.from_settings(self._settings),
            remedy=f"{CLI} reconcile --resolve {finding.id}",
            sleep=self._sleep,
        )
        document = GeneratedDocument(
            doc_id=doc_id,
            title=entry.title,
            decisions_consumed=decisions_for(doc_id, records),
            verification_flags=(
                current.verification_flags if current is not None
                else verification_flags_for(doc_id, records)
            ),
            generation=(current.generation + 1) if current is not None else 1,
            body=body,
        )
        await self._repo.write_document(document)
        logger.info("Regenerated %s for finding %s", doc_id, finding.id)
        return document
