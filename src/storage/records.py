# src/storage/records.py - v1
"""Plain-text record codec: YAML header block followed by a Markdown body.

    ---
    kind: decision_record
    topic: auth
    ---
    # Authentication
    ...

Keys are dumped sorted so the same header always serializes to the same bytes.
"""

from __future__ import annotations

from typing import Any

import yaml

from grandlibrary.core.errors import CorruptArtifact

DELIMITER = "---"


class RecordFormatError(CorruptArtifact):
    """A record's header block is malformed or fails validation."""


def dump_record(header: dict[str, Any], body: str = "") -> str:
    """Serialize a header mapping and body into record text."""
    header_text = yaml.safe_dump(
        header, sort_keys=True, allow_unicode=True, default_flow_style=False, width=100
    )
    body = body.strip("\n")
    text = f"{DELIMITER}\n{header_text}{DELIMITER}\n"
    if body:
        text += f"{body}\n"
    return text


def load_record(text: str, source: str = "<record>") -> tuple[dict[str, Any], str]:
    """Split record text into (header, body).

    Text without a header block is returned as ({}, text).
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return {}, text

    for idx in range(1, len(lines)):
        if lines[idx].strip() == DELIMITER:
            header_text = "".join(lines[1:idx])
            body = "".join(lines[idx + 1:])
            break
    else:
        raise RecordFormatError(source, "header block is not terminated")

    try:
        header = yaml.safe_load(header_text) or {}
    except yaml.YAMLError as exc:
        raise RecordFormatError(source, f"invalid header: {exc}") from exc
    if not isinstance(header, dict):
        raise RecordFormatError(source, "header must be a mapping")
    return header, body
