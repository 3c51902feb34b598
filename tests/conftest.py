"""Shared fixtures for the Edge Graph tests."""

import pytest

from edge_graph.parser import load_graph


@pytest.fixture
def example_document():
    """Two typed nodes joined by one LIKES edge."""
    return {
        "nodes": [
            {"id": 1, "label": "A", "properties": {"type": "X"}},
            {"id": 2, "label": "B", "properties": {"type": "Y"}},
        ],
        "edges": [
            {"source_node_id": 1, "target_node_id": 2, "relationship_name": "LIKES", "properties": {}},
        ],
        "colors": {"X": "#ff0000", "Y": "#00ff00"},
    }


@pytest.fixture
def build_graph():
    """Factory: ``build_graph([1, 2, 3], [(1, 2), (2, 3, "OWNS")])``.

    Nodes may be bare ids (typed ``T``) or full node records.  Edges are
    ``(source, target)`` or ``(source, target, relationship)``; the default
    relationship is ``REL``.
    """
    def _build(nodes, edges=(), colors=None):
        node_records = [
            n if isinstance(n, dict) else {"id": n, "label": f"N{n}", "properties": {"type": "T"}}
            for n in nodes
        ]
        edge_records = []
        for edge in edges:
            source, target = edge[0], edge[1]
            rel = edge[2] if len(edge) > 2 else "REL"
            edge_records.append({
                "source_node_id": source,
                "target_node_id": target,
                "relationship_name": rel,
                "properties": {},
            })
        return load_graph({"nodes": node_records, "edges": edge_records, "colors": colors or {}})
    return _build
