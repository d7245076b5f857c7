# src/storage/layout.py - v1
"""Persisted record layout under the project root.

All paths are relative record keys; the record store resolves them.
"""

from __future__ import annotations

from grandlibrary.config.settings import Settings

STATE_FILE = "STATE.json"
CALLS_LOG_FILE = "calls_log.jsonl"
BRIEF_FILE = "PROJECT_BRIEF.md"
MANIFEST_FILE = "DOC_MANIFEST.md"
REPORT_FILE = "RECONCILIATION_REPORT.md"
DECISIONS_DIR = "DECISIONS"

# Files in the docs directory that are not generated documents.
RESERVED_DOC_FILES = frozenset({BRIEF_FILE, MANIFEST_FILE, REPORT_FILE})


class Layout:
    """Record keys derived from the configured state and docs directories."""

    def __init__(self, state_dir: str = ".grand-library", docs_dir: str = ".docs") -> None:
        self.state_dir = state_dir.rstrip("/")
        self.docs_dir = docs_dir.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> Layout:
        return cls(state_dir=settings.state_dir, docs_dir=settings.docs_dir)

    # --- state ---

    @property
    def state(self) -> str:
        return f"{self.state_dir}/{STATE_FILE}"

    @property
    def calls_log(self) -> str:
        return f"{self.state_dir}/{CALLS_LOG_FILE}"

    # --- artifacts ---

    @property
    def brief(self) -> str:
        return f"{self.docs_dir}/{BRIEF_FILE}"

    @property
    def manifest(self) -> str:
        return f"{self.docs_dir}/{MANIFEST_FILE}"

    @property
    def report(self) -> str:
        return f"{self.docs_dir}/{REPORT_FILE}"

    @property
    def decisions_dir(self) -> str:
        return f"{self.docs_dir}/{DECISIONS_DIR}"

    def decision(self, topic: str) -> str:
        return f"{self.decisions_dir}/{topic}.md"

    def document(self, doc_id: str) -> str:
        return f"{self.docs_dir}/{doc_id}.md"
