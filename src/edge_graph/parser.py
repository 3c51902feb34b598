"""Graph document loader for Edge Graph.

Accepts the JSON document shape described in ``edge_graph.models``.  Because
JSON is a subset of YAML, documents are decoded with ``yaml.safe_load`` and
may equally be written as YAML.

Malformed input never raises past ``load_graph``: a document without
``nodes``/``edges`` (or one that fails validation) is logged and becomes an
empty graph, and edges pointing at unknown node ids are dropped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .graph import Graph
from .models import FALLBACK_COLOR, GraphDocument, GraphEdge, GraphNode

logger = logging.getLogger(__name__)


def parse_graph(text: str, fallback_color: str = FALLBACK_COLOR) -> Graph:
    """Parse a JSON or YAML string into a Graph.

    Text that is not valid YAML raises ``yaml.YAMLError``.  Anything that
    decodes (including blank text, ``{}`` and ``[]``) goes through
    ``load_graph`` and degrades to an empty graph when it has the wrong shape.
    """
    data = yaml.safe_load(text)
    return load_graph(data, fallback_color=fallback_color)


def parse_file(path: str, fallback_color: str = FALLBACK_COLOR) -> Graph:
    """Parse a JSON or YAML file into a Graph."""
    content = Path(path).read_text(encoding="utf-8")
    return parse_graph(content, fallback_color=fallback_color)


def load_graph(data: Any, fallback_color: str = FALLBACK_COLOR) -> Graph:
    """Build a Graph from an already-decoded document."""
    if not isinstance(data, dict) or "nodes" not in data or "edges" not in data:
        logger.error("Invalid graph document: expected an object with 'nodes' and 'edges'")
        return Graph()

    try:
        document = GraphDocument.model_validate(data)
    except ValidationError as e:
        logger.error(f"Invalid graph document: {e}")
        return Graph()

    nodes: list[GraphNode] = []
    node_map: dict = {}
    for record in document.nodes:
        if record.id in node_map:
            logger.warning(f"Duplicate node id {record.id!r}; keeping the first occurrence")
            continue
        node = GraphNode(
            id=record.id,
            label=record.label if record.label is not None else str(record.id),
            properties=dict(record.properties),
            color=_resolve_color(record.properties, document.colors, fallback_color),
        )
        nodes.append(node)
        node_map[node.id] = node

    edges: list[GraphEdge] = []
    for record in document.edges:
        source = node_map.get(record.source_node_id)
        target = node_map.get(record.target_node_id)
        if source is None or target is None:
            logger.debug(
                f"Dropping edge {record.source_node_id!r} -> {record.target_node_id!r}: "
                "unknown endpoint"
            )
            continue
        edges.append(GraphEdge(
            source=source,
            target=target,
            relationship=record.relationship_name,
            properties=dict(record.properties),
        ))

    graph = Graph(
        nodes=nodes,
        edges=edges,
        colors=dict(document.colors),
        configuration=document.configuration,
    )
    logger.info(
        f"Loaded graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges "
        f"({len(document.edges) - len(edges)} dropped)"
    )
    return graph


def _resolve_color(properties: dict, colors: dict[str, str], fallback_color: str) -> str:
    node_type = properties.get("type")
    if node_type is None:
        return fallback_color
    return colors.get(str(node_type), fallback_color)
