# src/storage/artifacts.py - v1
"""Artifact repository: brief, decision records, manifest, documents, report.

Every artifact is one plain-text record (YAML header + Markdown body) and is
read or replaced whole. The repository never patches a record in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from grandlibrary.core.errors import PHASE_COMMANDS, CLI, MissingArtifact
from grandlibrary.core.models import (
    DecisionRecord,
    DocumentManifest,
    GeneratedDocument,
    ReconciliationReport,
)
from grandlibrary.storage.base_store import BaseRecordStore
from grandlibrary.storage.layout import RESERVED_DOC_FILES, Layout
from grandlibrary.storage.records import RecordFormatError, dump_record, load_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactSnapshot:
    """Point-in-time copy of every artifact the reconciliation passes read."""

    brief: str
    decisions: tuple[DecisionRecord, ...]
    manifest: DocumentManifest
    documents: dict[str, GeneratedDocument] = field(default_factory=dict)


class ArtifactRepository:
    """Typed access to the artifact records of one project."""

    def __init__(self, store: BaseRecordStore, layout: Layout) -> None:
        self._store = store
        self._layout = layout

    @property
    def layout(self) -> Layout:
        return self._layout

    # ------------------------------------------------------------------
    # Project brief
    # ------------------------------------------------------------------

    async def read_brief(self) -> str | None:
        if not await self._store.exists(self._layout.brief):
            return None
        _, body = load_record(await self._store.read(self._layout.brief), self._layout.brief)
        return body.strip("\n")

    async def require_brief(self) -> str:
        brief = await self.read_brief()
        if brief is None:
            raise MissingArtifact(self._layout.brief, PHASE_COMMANDS["survey"])
        return brief

    async def write_brief(self, body: str, project_name: str, tokens: int) -> str:
        header = {"kind": "project_brief", "project": project_name, "tokens": tokens}
        await self._store.write(self._layout.brief, dump_record(header, body))
        return self._layout.brief

    # ------------------------------------------------------------------
    # Decision records
    # ------------------------------------------------------------------

    async def read_decision_record(self, topic: str) -> DecisionRecord | None:
        key = self._layout.decision(topic)
        if not await self._store.exists(key):
            return None
        header, _ = load_record(await self._store.read(key), key)
        return self._validate(DecisionRecord, _strip_kind(header), key)

    async def require_decision_record(self, topic: str) -> DecisionRecord:
        record = await self.read_decision_record(topic)
        if record is None:
            raise MissingArtifact(
                self._layout.decision(topic), f"{CLI} interview --topic {topic}"
            )
        return record

    async def write_decision_record(self, record: DecisionRecord) -> str:
        key = self._layout.decision(record.topic)
        header = {"kind": "decision_record", **record.model_dump(mode="json")}
        await self._store.write(key, dump_record(header, render_decision_record(record)))
        return key

    async def delete_decision_record(self, topic: str) -> str:
        key = self._layout.decision(topic)
        await self._store.delete(key)
        return key

    async def decision_record_body(self, topic: str) -> str:
        key = self._layout.decision(topic)
        _, body = load_record(await self._store.read(key), key)
        return body

    async def list_decision_records(self) -> list[DecisionRecord]:
        records: list[DecisionRecord] = []
        for name in await self._store.list_dir(self._layout.decisions_dir):
            if not name.endswith(".md"):
                continue
            record = await self.read_decision_record(name[: -len(".md")])
            if record is not None:
                records.append(record)
        return records

    # ------------------------------------------------------------------
    # Document manifest
    # ------------------------------------------------------------------

    async def read_manifest(self) -> DocumentManifest | None:
        key = self._layout.manifest
        if not await self._store.exists(key):
            return None
        header, _ = load_record(await self._store.read(key), key)
        return self._validate(DocumentManifest, _strip_kind(header), key)

    async def require_manifest(self) -> DocumentManifest:
        manifest = await self.read_manifest()
        if manifest is None:
            raise MissingArtifact(self._layout.manifest, PHASE_COMMANDS["survey"])
        return manifest

    async def write_manifest(self, manifest: DocumentManifest) -> str:
        header = {"kind": "document_manifest", **manifest.model_dump(mode="json")}
        await self._store.write(
            self._layout.manifest, dump_record(header, render_manifest(manifest))
        )
        return self._layout.manifest

    # ------------------------------------------------------------------
    # Generated documents
    # ------------------------------------------------------------------

    async def read_document(self, doc_id: str) -> GeneratedDocument | None:
        key = self._layout.document(doc_id)
        if not await self._store.exists(key):
            return None
        header, body = load_record(await self._store.read(key), key)
        data = _strip_kind(header)
        data.setdefault("doc_id", doc_id)
        data.setdefault("title", doc_id)
        data["body"] = body.strip("\n")
        return self._validate(GeneratedDocument, data, key)

    async def require_document(self, doc_id: str) -> GeneratedDocument:
        document = await self.read_document(doc_id)
        if document is None:
            raise MissingArtifact(
                self._layout.document(doc_id), f"{CLI} draft --doc {doc_id}"
            )
        return document

    async def write_document(self, document: GeneratedDocument) -> str:
        key = self._layout.document(document.doc_id)
        header = {"kind": "document", **document.model_dump(mode="json", exclude={"body"})}
        await self._store.write(key, dump_record(header, document.body))
        return key

    async def list_document_ids(self) -> list[str]:
        return [
            name[: -len(".md")]
            for name in await self._store.list_dir(self._layout.docs_dir)
            if name.endswith(".md") and name not in RESERVED_DOC_FILES
        ]

    # ------------------------------------------------------------------
    # Reconciliation report
    # ------------------------------------------------------------------

    async def read_report(self) -> ReconciliationReport | None:
        key = self._layout.report
        if not await self._store.exists(key):
            return None
        header, _ = load_record(await self._store.read(key), key)
        return self._validate(ReconciliationReport, _strip_kind(header), key)

    async def require_report(self) -> ReconciliationReport:
        report = await self.read_report()
        if report is None:
            raise MissingArtifact(self._layout.report, PHASE_COMMANDS["reconcile"])
        return report

    async def write_report(self, report: ReconciliationReport) -> str:
        header = {"kind": "reconciliation_report", **report.model_dump(mode="json")}
        await self._store.write(self._layout.report, dump_record(header, render_report(report)))
        return self._layout.report

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def snapshot(self) -> ArtifactSnapshot:
        """Read every artifact once so later passes see a single point in time."""
        manifest = await self.require_manifest()
        documents: dict[str, GeneratedDocument] = {}
        for doc_id in sorted(set(manifest.doc_ids) | set(await self.list_document_ids())):
            document = await self.read_document(doc_id)
            if document is not None:
                documents[doc_id] = document
        return ArtifactSnapshot(
            brief=await self.read_brief() or "",
            decisions=tuple(sorted(await self.list_decision_records(), key=lambda r: r.topic)),
            manifest=manifest,
            documents=documents,
        )

    @staticmethod
    def _validate(model: Any, data: dict[str, Any], key: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise RecordFormatError(key, str(exc)) from exc


def _strip_kind(header: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in header.items() if k != "kind"}


# ----------------------------------------------------------------------
# Markdown renderings (record bodies)
# ----------------------------------------------------------------------


def render_decision_record(record: DecisionRecord) -> str:
    """Full Markdown rendering of a decision record."""
    lines = [f"# {record.title or record.topic}", ""]
    for d in record.decisions:
        lines.append(f"## {d.id}: {d.title or d.chosen}")
        lines.append("")
        lines.append(f"**Chosen:** {d.chosen}")
        if d.rationale:
            lines.append("")
            lines.append(f"**Rationale:** {d.rationale}")
        if d.alternatives:
            lines.append("")
            lines.append("**Alternatives considered:**")
            lines.extend(f"- {alt}" for alt in d.alternatives)
        if d.open_questions:
            lines.append("")
            lines.append("**Open questions:**")
            lines.extend(f"- {q}" for q in d.open_questions)
        if d.needs_verification:
            note = f": {d.verification_note}" if d.verification_note else ""
            lines.append("")
            lines.append(f"**Needs verification**{note}")
        lines.append("")
        lines.append(f"**Affects:** {', '.join(d.affects_docs)}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_manifest(manifest: DocumentManifest) -> str:
    lines = ["# Document Manifest", ""]
    for wave, entries in manifest.waves().items():
        lines.append(f"## Wave {wave}")
        lines.append("")
        lines.append("| Id | Title | Type | Requires | Status |")
        lines.append("|----|-------|------|----------|--------|")
        for e in entries:
            requires = ", ".join(e.requires) or "-"
            lines.append(f"| {e.id} | {e.title} | {e.doc_type} | {requires} | {e.status} |")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


_KIND_TITLES = {
    "missing_decision_trace": "Completeness: missing decision traces",
    "conflict": "Consistency: conflicts",
    "gap": "Gaps",
    "verification": "Verification audit",
}


def render_report(report: ReconciliationReport) -> str:
    lines = [f"# Reconciliation Report (run {report.run})", ""]
    counts = report.counts()
    for kind, title in _KIND_TITLES.items():
        group = report.of_kind(kind)
        lines.append(f"## {title} ({counts[kind]['open']} open / {counts[kind]['found']})")
        lines.append("")
        if not group:
            lines.append("None.")
        for f in group:
            mark = "x" if not f.is_open else " "
            lines.append(f"- [{mark}] `{f.id}` {f.describe()}")
            if f.resolution_note:
                lines.append(f"  - {f.status}: {f.resolution_note}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
