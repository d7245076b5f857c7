# src/pipeline/waves.py - v1
"""Manifest wave planning and validation.

Documents within a wave may be dispatched concurrently because none depends
on another in the same wave; waves run in ascending order.

Uses Kahn's algorithm with level detection: level k holds the documents
whose document dependencies all sit in levels < k.
"""

from __future__ import annotations

import logging

from grandlibrary.core.errors import ManifestError
from grandlibrary.core.models import DocumentManifest, ManifestEntry

logger = logging.getLogger(__name__)


def build_waves(dependency_map: dict[str, list[str]]) -> list[list[str]]:
    """Group ids into dependency levels.

    Args:
        dependency_map: doc_id -> ids of the documents it requires.

    Returns:
        Levels in execution order, each sorted.

    Raises:
        ManifestError: If a dependency is unknown or a cycle is detected.
    """
    if not dependency_map:
        return []

    all_docs = set(dependency_map)
    for doc, deps in dependency_map.items():
        for dep in deps:
            if dep not in all_docs:
                raise ManifestError(f"Document '{doc}' requires unknown document '{dep}'")

    in_degree: dict[str, int] = {d: 0 for d in all_docs}
    dependents: dict[str, list[str]] = {d: [] for d in all_docs}
    for doc, deps in dependency_map.items():
        for dep in set(deps):
            dependents[dep].append(doc)
            in_degree[doc] += 1

    levels: list[list[str]] = []
    queue = sorted(d for d, n in in_degree.items() if n == 0)
    processed = 0
    while queue:
        levels.append(queue)
        next_queue: list[str] = []
        for doc in queue:
            processed += 1
            for dependent in dependents[doc]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_queue.append(dependent)
        queue = sorted(next_queue)

    if processed != len(all_docs):
        remaining = sorted(d for d in all_docs if in_degree[d] > 0)
        raise ManifestError(f"Dependency cycle among documents: {remaining}")
    return levels


def validate_manifest(manifest: DocumentManifest, topics: set[str] | None = None) -> None:
    """Reject duplicates, unknown ids, cycles and forward references.

    Args:
        manifest: The manifest to check.
        topics: Known topic slugs; when given, topic requirements must name one.

    Raises:
        ManifestError: On the first violation found.
    """
    seen: set[str] = set()
    for entry in manifest.entries:
        if entry.id in seen:
            raise ManifestError(f"Duplicate document id '{entry.id}' in manifest")
        seen.add(entry.id)

    for entry in manifest.entries:
        for req in entry.requirements:
            if req.kind == "doc" and req.target not in seen:
                raise ManifestError(
                    f"Document '{entry.id}' requires unknown document '{req.target}'"
                )
            if req.kind == "topic" and topics is not None and req.target not in topics:
                raise ManifestError(
                    f"Document '{entry.id}' requires unknown topic '{req.target}'"
                )
            unresolved = topics is not None and req.target not in seen | topics
            if req.kind == "any" and unresolved:
                raise ManifestError(
                    f"Document '{entry.id}' requires '{req.target}', which is "
                    "neither a document nor a topic"
                )

    build_waves({e.id: manifest.doc_dependencies(e.id) for e in manifest.entries})

    declared = {e.id: e.wave for e in manifest.entries}
    for entry in manifest.entries:
        for dep in manifest.doc_dependencies(entry.id):
            if declared[dep] >= entry.wave:
                raise ManifestError(
                    f"Forward reference: '{entry.id}' (wave {entry.wave}) requires "
                    f"'{dep}' (wave {declared[dep]}); dependencies must sit in an "
                    "earlier wave"
                )


def assign_waves(entries: list[ManifestEntry], keep_declared: bool = True) -> DocumentManifest:
    """Build a manifest, computing waves from document dependencies.

    A declared wave is kept when it is not earlier than the computed level;
    otherwise the entry is pushed back to the earliest wave its dependencies
    allow.
    """
    manifest = DocumentManifest(entries=list(entries))
    levels = build_waves({e.id: manifest.doc_dependencies(e.id) for e in manifest.entries})
    by_id = {e.id: e for e in manifest.entries}
    wave_of: dict[str, int] = {}
    for doc in (d for level in levels for d in level):
        entry = by_id[doc]
        wave = 1 + max((wave_of[d] for d in manifest.doc_dependencies(doc)), default=0)
        if keep_declared and "wave" in entry.model_fields_set:
            wave = max(wave, entry.wave)
        wave_of[doc] = wave

    placed = [e.model_copy(update={"wave": wave_of[e.id]}) for e in entries]
    result = DocumentManifest(entries=placed)
    logger.info(
        "Planned %d documents in %d waves", len(placed), len(result.waves())
    )
    return result


def place_entry(manifest: DocumentManifest, entry: ManifestEntry) -> DocumentManifest:
    """Append entry at the earliest wave its document dependencies allow."""
    if manifest.entry(entry.id) is not None:
        raise ManifestError(f"Document '{entry.id}' already exists in the manifest")
    candidate = DocumentManifest(entries=[*manifest.entries, entry])
    deps = candidate.doc_dependencies(entry.id)
    for dep in deps:
        if manifest.entry(dep) is None:
            raise ManifestError(f"Document '{entry.id}' requires unknown document '{dep}'")
    wave = 1 + max((manifest.entry(d).wave for d in deps), default=0)  # type: ignore[union-attr]
    return DocumentManifest(
        entries=[*manifest.entries, entry.model_copy(update={"wave": wave})]
    )
