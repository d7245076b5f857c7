# tests/unit/context/test_summarize.py - v1
"""Tests for context/summarize.py and context/fragments.py."""

from __future__ import annotations

from grandlibrary.context.fragments import (
    decision_fragment,
    document_fragment,
    planned_entry_fragment,
)
from grandlibrary.context.summarize import (
    condense_decision_record,
    describe_planned_entry,
    summarize_document,
)
from grandlibrary.context.tokens import estimate_tokens


class TestTokens:
    def test_ceil(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestSummarizeDocument:
    def test_summary_shape(self):
        body = "The ledger service.\n\n## Setup\n\ntext\n\n### Detail\n\n## Usage\n"
        summary = summarize_document("Guide", body)
        assert summary.startswith("# Guide\nSummary: The ledger service.")
        assert "- Setup\n  - Detail\n- Usage" in summary
        assert "text" not in summary.split("Contents:")[1]

    def test_bounded(self):
        body = " ".join(["word"] * 500) + "\n\n" + "\n".join(f"## S{i}" for i in range(50))
        assert estimate_tokens(summarize_document("Long", body, max_tokens=40)) <= 40


class TestCondense:
    def test_keeps_choice_and_first_sentence(self, sample_records):
        storage = sample_records[1]
        text = condense_decision_record(storage)
        assert "- storage-1: PostgreSQL 16 (Entries are relational.)" in text
        assert "SQLite" not in text

    def test_marks_verification(self, sample_records):
        assert "[needs verification]" in condense_decision_record(sample_records[0])


class TestFragments:
    def test_decision_fragment(self, sample_records, layout):
        fragment = decision_fragment(sample_records[1], layout)
        assert fragment.id == "decisions/storage"
        assert fragment.reference_path == ".docs/DECISIONS/storage.md"
        assert len(fragment.condensed) < len(fragment.full)

    def test_document_fragment(self, sample_documents, layout):
        fragment = document_fragment(sample_documents["architecture"], layout)
        assert fragment.full.startswith("# Architecture\n\n")
        assert fragment.summary.startswith("# Architecture")

    def test_planned_entry(self, sample_manifest):
        entry = sample_manifest.entry("architecture")
        assert planned_entry_fragment(entry).id == "planned/architecture"
        text = describe_planned_entry(entry)
        assert "(planned, not yet written)" in text
        assert "- Overview\n- Storage" in text
