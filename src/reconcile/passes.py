# src/reconcile/passes.py - v1
"""The four reconciliation passes.

Each pass is a pure function of one frozen snapshot (and the artifact graph
built from it); none reads the store or mutates an artifact, so running the
passes twice on the same snapshot yields identical findings.

  completeness   every affected document traces each decision
  consistency    no two documents state different values for one subject
  gap            planned documents, declared sections and placeholders
  verification   every carried-forward "needs confirmation" marker
"""

from __future__ import annotations

import logging
import re

import networkx as nx

from grandlibrary.core.models import (
    Conflict,
    Decision,
    Gap,
    GeneratedDocument,
    MissingDecisionTrace,
    VerificationItem,
)
from grandlibrary.core.text import headings, slugify
from grandlibrary.reconcile.graph import affected_documents, unplanned_documents
from grandlibrary.storage.artifacts import ArtifactSnapshot

logger = logging.getLogger(__name__)

# "**Subject**: value" or "**Subject:** value", optionally as a list item.
_FACT_RE = re.compile(
    r"^\s*(?:[-*]\s+)?\*\*(?P<subject>[^*\n]+?)(?::\*\*|\*\*:)\s*(?P<value>\S.*?)\s*$"
)
_PLACEHOLDER_RE = re.compile(r"\b(TBD|TODO|FIXME)\b")
_VERIFY_MARKER_RE = re.compile(r"\[NEEDS VERIFICATION:\s*(?P<item>[^\]]+?)\s*\]", re.IGNORECASE)
_HEADING_LINE_RE = re.compile(r"^#{1,6}\s+(?P<title>.+?)\s*#*\s*$")


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


# ----------------------------------------------------------------------
# Completeness
# ----------------------------------------------------------------------


def traces_decision(body: str, decision: Decision) -> bool:
    """A body traces a decision when it names its id or states its chosen option."""
    haystack = _normalize(body)
    if re.search(rf"(?<![\w-]){re.escape(decision.id.lower())}(?![\w-])", haystack):
        return True
    chosen = _normalize(decision.chosen)
    return bool(chosen) and chosen in haystack


def completeness_pass(snapshot: ArtifactSnapshot, graph: nx.DiGraph) -> list[MissingDecisionTrace]:
    """One MissingDecisionTrace per generated affected document lacking a trace.

    Affected documents that were never generated are left to the gap pass.
    """
    findings: list[MissingDecisionTrace] = []
    for record in snapshot.decisions:
        for decision in record.decisions:
            for doc_id in affected_documents(graph, record.topic, decision.id):
                document = snapshot.documents.get(doc_id)
                if document is None:
                    continue
                if not traces_decision(document.body, decision):
                    findings.append(
                        MissingDecisionTrace(
                            decision_id=decision.id, topic=record.topic, doc_id=doc_id
                        )
                    )
    return findings


# ----------------------------------------------------------------------
# Consistency
# ----------------------------------------------------------------------


def extract_facts(body: str) -> dict[str, tuple[str, str]]:
    """Map normalized subject -> (subject as written, value) for fact lines.

    The first statement of a subject in a document wins.
    """
    facts: dict[str, tuple[str, str]] = {}
    in_fence = False
    for line in body.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _FACT_RE.match(line)
        if not match:
            continue
        subject = match.group("subject").strip()
        key = _normalize(subject)
        if key and key not in facts:
            facts[key] = (subject, match.group("value").strip())
    return facts


def _normalize_value(value: str) -> str:
    return _normalize(value).rstrip(".;,")


def consistency_pass(snapshot: ArtifactSnapshot) -> list[Conflict]:
    """Value conflicts: one subject, different values in two documents."""
    by_subject: dict[str, list[tuple[str, str, str]]] = {}
    for doc_id in sorted(snapshot.documents):
        for key, (subject, value) in extract_facts(snapshot.documents[doc_id].body).items():
            by_subject.setdefault(key, []).append((doc_id, subject, value))

    findings: list[Conflict] = []
    for key in sorted(by_subject):
        group = by_subject[key]
        for i in range(len(group)):
            for j in range(i + 1, len(group)):
                doc_a, subject, value_a = group[i]
                doc_b, _, value_b = group[j]
                if _normalize_value(value_a) == _normalize_value(value_b):
                    continue
                findings.append(
                    Conflict(
                        doc_a=doc_a,
                        doc_b=doc_b,
                        subject=subject,
                        description=(
                            f"'{subject}' is '{value_a}' in {doc_a} "
                            f"but '{value_b}' in {doc_b}"
                        ),
                    )
                )
    if findings:
        logger.warning("Consistency pass: %d conflicts", len(findings))
    return findings


# ----------------------------------------------------------------------
# Gaps
# ----------------------------------------------------------------------


def _placeholder_sections(body: str) -> list[tuple[str, str]]:
    """(section title, placeholder token) for the first placeholder per section."""
    found: list[tuple[str, str]] = []
    seen: set[str] = set()
    section = ""
    in_fence = False
    for line in body.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        heading = _HEADING_LINE_RE.match(line)
        if heading:
            section = heading.group("title").strip()
            continue
        match = _PLACEHOLDER_RE.search(line)
        if match and section not in seen:
            seen.add(section)
            found.append((section, match.group(1)))
    return found


def _document_gaps(doc_id: str, document: GeneratedDocument, sections: list[str]) -> list[Gap]:
    gaps: list[Gap] = []
    if not document.body.strip():
        return [Gap(location=doc_id, description="document body is empty")]
    present = {_normalize(t) for _, t in headings(document.body, max_level=6)}
    for section in sections:
        if _normalize(section) not in present:
            gaps.append(
                Gap(
                    location=f"{doc_id}#{slugify(section)}",
                    description=f"declared section '{section}' is missing",
                )
            )
    for section, token in _placeholder_sections(document.body):
        location = f"{doc_id}#{slugify(section)}" if section else doc_id
        gaps.append(Gap(location=location, description=f"placeholder '{token}' left in content"))
    return gaps


def gap_pass(snapshot: ArtifactSnapshot, graph: nx.DiGraph) -> list[Gap]:
    """Missing documents, missing declared sections, placeholders, unplanned targets."""
    findings: list[Gap] = []
    for entry in snapshot.manifest.entries:
        document = snapshot.documents.get(entry.id)
        if document is None:
            findings.append(
                Gap(location=entry.id, description="planned document has not been generated")
            )
            continue
        findings.extend(_document_gaps(entry.id, document, entry.sections))

    unplanned = set(unplanned_documents(graph))
    for record in snapshot.decisions:
        for decision in record.decisions:
            for doc_id in decision.affects_docs:
                if doc_id in unplanned:
                    findings.append(
                        Gap(
                            location=f"decisions/{record.topic}#{decision.id}",
                            description=(
                                f"decision affects '{doc_id}', which is not a planned document"
                            ),
                        )
                    )
    return findings


# ----------------------------------------------------------------------
# Verification audit
# ----------------------------------------------------------------------


def verification_pass(snapshot: ArtifactSnapshot) -> list[VerificationItem]:
    """Decision flags, document header flags and inline markers, in that order."""
    findings: list[VerificationItem] = []
    for record in snapshot.decisions:
        for decision in record.decisions:
            if decision.needs_verification:
                findings.append(
                    VerificationItem(
                        source=f"decision:{record.topic}/{decision.id}",
                        item=decision.chosen,
                        note=decision.verification_note,
                    )
                )
    for doc_id in sorted(snapshot.documents):
        document = snapshot.documents[doc_id]
        for flag in document.verification_flags:
            findings.append(VerificationItem(source=f"doc:{doc_id}", item=flag))
        for match in _VERIFY_MARKER_RE.finditer(document.body):
            findings.append(
                VerificationItem(source=f"doc:{doc_id}", item=match.group("item"), note="inline")
            )
    return findings
