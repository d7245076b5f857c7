# src/dispatch/parsing.py - v1
"""Interpret worker text: fenced JSON payloads and Markdown documents.

The worker contract is plain text in and out; these helpers turn that text
into validated results. Any failure is a WorkerOutputError, which the
orchestrator treats like a failed dispatch and retries.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from grandlibrary.core.errors import WorkerOutputError
from grandlibrary.core.models import Decision

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n```", re.DOTALL)
_OUTER_MD_FENCE_RE = re.compile(r"^```(?:markdown|md)?\s*\n(.*)\n```\s*$", re.DOTALL)

M = TypeVar("M", bound=BaseModel)


# === Result models ===


class TopicSpec(BaseModel):
    slug: str
    title: str = ""
    relevant: bool = True
    reason: str = ""


class PlannedDocument(BaseModel):
    id: str
    title: str
    doc_type: str = "doc"
    wave: int | None = None
    requires: list[str] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    description: str = ""


class SurveyResult(BaseModel):
    project_name: str = ""
    brief: str
    topics: list[TopicSpec] = Field(default_factory=list)
    documents: list[PlannedDocument] = Field(min_length=1)


class InterviewResult(BaseModel):
    title: str = ""
    decisions: list[Decision] = Field(default_factory=list)


class ReviewConflict(BaseModel):
    doc_a: str
    doc_b: str
    subject: str = ""
    description: str


class ReviewGap(BaseModel):
    location: str
    description: str


class ReviewResult(BaseModel):
    conflicts: list[ReviewConflict] = Field(default_factory=list)
    gaps: list[ReviewGap] = Field(default_factory=list)


# === Parsing helpers ===


def extract_json(text: str) -> Any:
    """Return the JSON payload of a worker response.

    Prefers the last fenced block; falls back to the outermost {...} span.
    """
    blocks = _FENCE_RE.findall(text)
    candidates = list(reversed(blocks))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    last_error: Exception | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc
    raise WorkerOutputError(f"no JSON payload found in worker output ({last_error})")


def parse_result(text: str, model: type[M]) -> M:
    """Extract and validate a JSON payload into model."""
    data = extract_json(text)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise WorkerOutputError(f"worker output does not match {model.__name__}: {exc}") from exc


def extract_markdown(text: str) -> str:
    """Document body from worker text: drop an outer fence and any header block."""
    body = text.strip()
    match = _OUTER_MD_FENCE_RE.match(body)
    if match:
        body = match.group(1).strip()
    if body.startswith("---\n"):
        end = body.find("\n---", 4)
        if end != -1:
            body = body[end + 4 :].lstrip("\n")
    if not body.strip():
        raise WorkerOutputError("worker returned an empty document")
    return body
