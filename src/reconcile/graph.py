# src/reconcile/graph.py - v1
"""Artifact graph - the reconciliation view of one snapshot.

Node ids and attributes:
  topic:<slug>                 kind="topic"
  decision:<topic>/<id>        kind="decision", needs_verification
  doc:<id>                     kind="document", planned, generated, wave

Edges:
  topic -> decision            relation="decides"
  decision -> doc              relation="affects"
  doc (required) -> doc        relation="requires"

Documents referenced by a decision but absent from the manifest appear with
planned=False, which the gap pass reports.
"""

from __future__ import annotations

import logging
from typing import Collection

import networkx as nx

from grandlibrary.core.models import DocumentManifest
from grandlibrary.storage.artifacts import ArtifactSnapshot

logger = logging.getLogger(__name__)


def topic_node(slug: str) -> str:
    return f"topic:{slug}"


def decision_node(topic: str, decision_id: str) -> str:
    return f"decision:{topic}/{decision_id}"


def doc_node(doc_id: str) -> str:
    return f"doc:{doc_id}"


def build_document_graph(
    manifest: DocumentManifest, generated: Collection[str] = ()
) -> nx.DiGraph:
    """Planned documents and their requires edges only."""
    graph = nx.DiGraph()
    for entry in manifest.entries:
        graph.add_node(
            doc_node(entry.id),
            kind="document",
            doc_id=entry.id,
            planned=True,
            generated=entry.id in generated,
            wave=entry.wave,
        )
    for entry in manifest.entries:
        for dep in manifest.doc_dependencies(entry.id):
            graph.add_edge(doc_node(dep), doc_node(entry.id), relation="requires")
    return graph


def build_artifact_graph(snapshot: ArtifactSnapshot) -> nx.DiGraph:
    """Build a directed graph over topics, decisions and documents."""
    graph = build_document_graph(snapshot.manifest, snapshot.documents)

    for record in snapshot.decisions:
        graph.add_node(topic_node(record.topic), kind="topic", topic=record.topic)
        for decision in record.decisions:
            d_node = decision_node(record.topic, decision.id)
            graph.add_node(
                d_node,
                kind="decision",
                topic=record.topic,
                decision_id=decision.id,
                needs_verification=decision.needs_verification,
            )
            graph.add_edge(topic_node(record.topic), d_node, relation="decides")
            for doc_id in decision.affects_docs:
                node = doc_node(doc_id)
                if node not in graph:
                    graph.add_node(
                        node,
                        kind="document",
                        doc_id=doc_id,
                        planned=False,
                        generated=doc_id in snapshot.documents,
                        wave=None,
                    )
                graph.add_edge(d_node, node, relation="affects")

    logger.debug(
        "Artifact graph: %d nodes, %d edges", graph.number_of_nodes(), graph.number_of_edges()
    )
    return graph


def affected_documents(graph: nx.DiGraph, topic: str, decision_id: str) -> list[str]:
    """Document ids a decision affects, in declaration-independent sorted order."""
    node = decision_node(topic, decision_id)
    if node not in graph:
        return []
    return sorted(
        graph.nodes[n]["doc_id"]
        for n in graph.successors(node)
        if graph.edges[node, n]["relation"] == "affects"
    )


def unplanned_documents(graph: nx.DiGraph) -> list[str]:
    return sorted(
        data["doc_id"]
        for _, data in graph.nodes(data=True)
        if data["kind"] == "document" and not data["planned"]
    )


def downstream_documents(graph: nx.DiGraph, doc_id: str) -> list[str]:
    """Documents that transitively require doc_id."""
    node = doc_node(doc_id)
    if node not in graph:
        return []
    return sorted(
        graph.nodes[n]["doc_id"]
        for n in nx.descendants(graph, node)
        if graph.nodes[n]["kind"] == "document"
    )
