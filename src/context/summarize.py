# src/context/summarize.py - v1
"""Deterministic degraded renderings used by the budgeter.

- Document summary: title header, executive statement, table of contents of
  sub-sections, no body. Bounded by a token limit (default ~150).
- Condensed decision record: chosen option plus a one-sentence rationale per
  decision; alternatives and open questions are dropped.

Pure functions, no LLM call.
"""

from __future__ import annotations

from grandlibrary.context.tokens import chars_for_tokens
from grandlibrary.core.models import DecisionRecord, ManifestEntry
from grandlibrary.core.text import first_paragraph, first_sentence, headings, truncate_words

EXECUTIVE_MAX_WORDS = 60


def summarize_document(title: str, body: str, max_tokens: int = 150) -> str:
    """Summary rendering of a document, at most max_tokens (estimated)."""
    limit = chars_for_tokens(max_tokens)
    executive = truncate_words(first_paragraph(body), EXECUTIVE_MAX_WORDS)
    toc = [f"{'  ' * (level - 2)}- {t}" for level, t in headings(body) if level >= 2]

    def _compose(exec_text: str, toc_lines: list[str]) -> str:
        parts = [f"# {title}"]
        if exec_text:
            parts.append(f"Summary: {exec_text}")
        if toc_lines:
            parts.append("Contents:\n" + "\n".join(toc_lines))
        return "\n".join(parts)

    text = _compose(executive, toc)
    # Drop deepest TOC entries first, then shorten the executive statement.
    while len(text) > limit and toc:
        toc = toc[:-1]
        text = _compose(executive, toc)
    words = executive.split()
    while len(text) > limit and words:
        words = words[: max(0, len(words) - 5)]
        text = _compose(" ".join(words) + (" ..." if words else ""), toc)
    if len(text) > limit:
        text = text[:limit]
    return text


def condense_decision_record(record: DecisionRecord) -> str:
    """Chosen option and one-sentence rationale for every decision."""
    lines = [f"# {record.title or record.topic}"]
    for d in record.decisions:
        line = f"- {d.id}: {d.chosen}"
        reason = first_sentence(d.rationale)
        if reason:
            line += f" ({reason})"
        if d.needs_verification:
            line += " [needs verification]"
        lines.append(line)
    return "\n".join(lines)


def describe_planned_entry(entry: ManifestEntry) -> str:
    """Stand-in for a same-wave sibling that has not been generated yet."""
    parts = [f"# {entry.title} (planned, not yet written)"]
    if entry.description:
        parts.append(f"Purpose: {entry.description}")
    if entry.sections:
        parts.append("Planned sections:\n" + "\n".join(f"- {s}" for s in entry.sections))
    return "\n".join(parts)
