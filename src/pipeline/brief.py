# src/pipeline/brief.py - v1
"""Project brief maintenance.

The brief is re-read in full by every job, so it stays under a fixed token
budget. Interview appends one line per decision in a per-topic section;
compaction then applies deterministic steps in order and only calls the
compactor worker when they are not enough:

  1. drop duplicate lines
  2. shorten long decision lines
  3. merge each topic section into a single line
  4. compactor worker (must keep every "## Decisions: <topic>" heading)

A brief still over budget after step 4 raises BriefOverBudget.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable

from grandlibrary.context.tokens import estimate_tokens
from grandlibrary.core.errors import BriefOverBudget, WorkerOutputError
from grandlibrary.core.models import DecisionRecord
from grandlibrary.core.text import truncate_words

logger = logging.getLogger(__name__)

TOPIC_HEADING = "## Decisions: "
LINE_MAX_WORDS = 16

_TOPIC_HEADING_RE = re.compile(r"^## Decisions: (\S+)\s*$")

Compactor = Callable[[str], Awaitable[str]]


def decision_lines(record: DecisionRecord) -> list[str]:
    return [f"- {d.id}: {' '.join(d.chosen.split())}" for d in record.decisions]


def _split_sections(brief: str) -> tuple[list[str], dict[str, list[str]]]:
    """Split into the leading lines and the per-topic decision sections."""
    head: list[str] = []
    sections: dict[str, list[str]] = {}
    current: list[str] = head
    for line in brief.splitlines():
        match = _TOPIC_HEADING_RE.match(line)
        if match:
            current = sections.setdefault(match.group(1), [])
            continue
        if line.startswith("## "):
            current = head
        current.append(line)
    return head, sections


def _join(head: list[str], sections: dict[str, list[str]]) -> str:
    parts = ["\n".join(head).strip()]
    for topic, lines in sections.items():
        body = "\n".join(line for line in lines if line.strip())
        if body:
            parts.append(f"{TOPIC_HEADING}{topic}\n{body}")
    return "\n\n".join(p for p in parts if p) + "\n"


def set_topic_lines(brief: str, topic: str, lines: list[str]) -> str:
    """Replace (or add) the decision section of one topic."""
    head, sections = _split_sections(brief)
    sections[topic] = list(lines)
    return _join(head, sections)


def remove_topic(brief: str, topic: str) -> str:
    head, sections = _split_sections(brief)
    sections.pop(topic, None)
    return _join(head, sections)


def dedupe_lines(brief: str) -> str:
    """Drop repeated non-blank lines, keeping the first occurrence."""
    seen: set[str] = set()
    kept: list[str] = []
    for line in brief.splitlines():
        key = " ".join(line.split()).lower()
        if key and not key.startswith("#"):
            if key in seen:
                continue
            seen.add(key)
        kept.append(line)
    return "\n".join(kept).strip() + "\n"


def shorten_lines(brief: str, max_words: int = LINE_MAX_WORDS) -> str:
    """Truncate bullet lines to max_words words."""
    out: list[str] = []
    for line in brief.splitlines():
        if line.startswith("- "):
            line = "- " + truncate_words(line[2:], max_words)
        out.append(line)
    return "\n".join(out).strip() + "\n"


def merge_topics(brief: str) -> str:
    """Collapse each topic section into one line."""
    head, sections = _split_sections(brief)
    merged: dict[str, list[str]] = {}
    for topic, lines in sections.items():
        items = [line[2:].strip() for line in lines if line.startswith("- ")]
        if items:
            merged[topic] = ["- " + "; ".join(items)]
    return _join(head, merged)


def check_topic_headings(before: str, after: str) -> None:
    """Raise WorkerOutputError when compaction dropped a topic section.

    Later updates replace a topic's lines by heading; text that lost its
    heading could never be replaced and would contradict the new lines.
    """
    missing = sorted(set(_split_sections(before)[1]) - set(_split_sections(after)[1]))
    if missing:
        raise WorkerOutputError(
            "compacted brief lost the decision sections of: " + ", ".join(missing)
        )


async def compact_brief(
    brief: str,
    budget: int,
    compactor: Compactor | None = None,
) -> str:
    """Bring brief under budget tokens.

    Raises:
        WorkerOutputError: If the compactor dropped a topic section.
        BriefOverBudget: If the brief is still too large after every step.
    """
    if estimate_tokens(brief) <= budget:
        return brief
    before = estimate_tokens(brief)
    for step in (dedupe_lines, shorten_lines, merge_topics):
        brief = step(brief)
        if estimate_tokens(brief) <= budget:
            logger.info(
                "Brief compacted by %s: ~%d -> ~%d tokens",
                step.__name__, before, estimate_tokens(brief),
            )
            return brief

    if compactor is not None:
        compacted = (await compactor(brief)).strip() + "\n"
        check_topic_headings(brief, compacted)
        if estimate_tokens(compacted) < estimate_tokens(brief):
            brief = compacted
        if estimate_tokens(brief) <= budget:
            logger.info("Brief compacted by worker: ~%d -> ~%d tokens", before, estimate_tokens(brief))
            return brief

    tokens = estimate_tokens(brief)
    logger.error("Brief still ~%d tokens after compaction (budget %d)", tokens, budget)
    raise BriefOverBudget(tokens, budget)
