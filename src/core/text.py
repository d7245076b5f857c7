# src/core/text.py - v1
"""Small deterministic text helpers shared by the budgeter and the passes."""

from __future__ import annotations

import hashlib
import re

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase, hyphen-separated identifier derived from free text."""
    slug = _SLUG_STRIP_RE.sub("-", value.lower()).strip("-")
    return slug or "untitled"


def headings(body: str, max_level: int = 3) -> list[tuple[int, str]]:
    """Return (level, title) for every Markdown ATX heading outside code fences."""
    result: list[tuple[int, str]] = []
    in_fence = False
    for line in body.splitlines():
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING_RE.match(line)
        if match and len(match.group(1)) <= max_level:
            result.append((len(match.group(1)), match.group(2).strip()))
    return result


def first_paragraph(body: str) -> str:
    """First non-heading, non-empty paragraph of a Markdown body."""
    lines: list[str] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            if lines:
                break
            continue
        if stripped.startswith("#") or stripped.startswith("```"):
            if lines:
                break
            continue
        lines.append(stripped)
    return " ".join(lines)


def first_sentence(text: str) -> str:
    """First sentence of text (whole text when no terminator is found)."""
    text = " ".join(text.split())
    if not text:
        return ""
    return _SENTENCE_END_RE.split(text, maxsplit=1)[0]


def truncate_words(text: str, max_words: int) -> str:
    """Keep at most max_words words, marking the cut with an ellipsis."""
    words = text.split()
    if len(words) <= max_words:
        return " ".join(words)
    return " ".join(words[:max_words]) + " ..."


def short_hash(*parts: str, length: int = 10) -> str:
    """Stable hex digest of the given parts (used for finding ids)."""
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]
