# src/context/fragments.py - v1
"""Build budgeter fragments from artifacts."""

from __future__ import annotations

from grandlibrary.context.budgeter import Fragment
from grandlibrary.context.summarize import (
    condense_decision_record,
    describe_planned_entry,
    summarize_document,
)
from grandlibrary.core.models import DecisionRecord, GeneratedDocument, ManifestEntry
from grandlibrary.storage.artifacts import render_decision_record
from grandlibrary.storage.layout import Layout


def brief_fragment(brief: str) -> Fragment:
    return Fragment(id="project-brief", kind="brief", full=brief)


def task_fragment(fragment_id: str, text: str) -> Fragment:
    return Fragment(id=fragment_id, kind="instruction", full=text)


def other_fragment(fragment_id: str, text: str) -> Fragment:
    return Fragment(id=fragment_id, kind="other", full=text)


def decision_fragment(record: DecisionRecord, layout: Layout) -> Fragment:
    return Fragment(
        id=f"decisions/{record.topic}",
        kind="decision",
        full=render_decision_record(record),
        condensed=condense_decision_record(record),
        reference_path=layout.decision(record.topic),
    )


def document_fragment(
    document: GeneratedDocument,
    layout: Layout,
    summary_max_tokens: int = 150,
) -> Fragment:
    return Fragment(
        id=f"docs/{document.doc_id}",
        kind="document",
        full=f"# {document.title}\n\n{document.body}",
        summary=summarize_document(document.title, document.body, summary_max_tokens),
        reference_path=layout.document(document.doc_id),
    )


def planned_entry_fragment(entry: ManifestEntry) -> Fragment:
    return Fragment(id=f"planned/{entry.id}", kind="other", full=describe_planned_entry(entry))
