"""The in-memory graph: nodes, edges and the relations derived from them."""

from __future__ import annotations

import logging
import math
import random
from typing import Optional

from pydantic import BaseModel, Field

from .models import DisplayConfiguration, GraphEdge, GraphNode, NodeId, id_order_key

logger = logging.getLogger(__name__)

EXPAND_RADIUS = 100.0


class Graph(BaseModel):
    """A loaded dataset: the owner of every node and edge record.

    Derived lookups are built once in ``model_post_init``:

    - ``_node_map``: id → node
    - ``_pairs``: edge index → paired edge index for bidirectional edges.
      The scan is pairwise in edge-list order and the first match wins, so
      an edge has at most one partner.
    - ``_out`` / ``_in``: node id → outgoing / incoming edges, in edge order
    - ``_children``: node index → child node indices (the arena used by
      ``descendants``)
    """
    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    colors: dict[str, str] = Field(default_factory=dict)
    configuration: Optional[DisplayConfiguration] = None

    _node_map: dict[NodeId, GraphNode] = {}
    _pairs: dict[int, int] = {}
    _out: dict[NodeId, list[GraphEdge]] = {}
    _in: dict[NodeId, list[GraphEdge]] = {}
    _children: list[list[int]] = []
    _hidden_by: dict[NodeId, set[NodeId]] = {}

    def model_post_init(self, __context):
        """Index nodes and edges and build the derived lookups."""
        self._node_map = {}
        for i, node in enumerate(self.nodes):
            node.index = i
            self._node_map[node.id] = node

        self._out = {n.id: [] for n in self.nodes}
        self._in = {n.id: [] for n in self.nodes}
        self._children = [[] for _ in self.nodes]
        for i, edge in enumerate(self.edges):
            edge.index = i
            self._out[edge.source.id].append(edge)
            self._in[edge.target.id].append(edge)
            self._children[edge.source.index].append(edge.target.index)

        self._pairs = {}
        for i, first in enumerate(self.edges):
            if i in self._pairs:
                continue
            for j in range(i + 1, len(self.edges)):
                if j in self._pairs:
                    continue
                second = self.edges[j]
                if first.source.id == second.target.id and first.target.id == second.source.id:
                    self._pairs[i] = j
                    self._pairs[j] = i
                    break

        self._hidden_by = {}

    # --- Lookups ---

    def get_node(self, node_id: NodeId) -> Optional[GraphNode]:
        """Look up a node by id."""
        return self._node_map.get(node_id)

    def pair_of(self, edge: GraphEdge) -> Optional[GraphEdge]:
        """Return the bidirectional partner of ``edge``, if any."""
        partner = self._pairs.get(edge.index)
        return None if partner is None else self.edges[partner]

    def is_forward(self, edge: GraphEdge) -> bool:
        """Whether ``edge`` is the one drawn for its bidirectional pair.

        Unpaired edges are always forward.  For a pair, the edge whose source
        id is smaller than its target id draws both directions; when the ids
        are equal (a pair of self-loops) the lower edge index wins.
        """
        partner = self._pairs.get(edge.index)
        if partner is None:
            return True
        source = id_order_key(edge.source.id)
        target = id_order_key(edge.target.id)
        if source == target:
            return edge.index < partner
        return source < target

    def bidirectional_pairs(self) -> list[tuple[GraphEdge, GraphEdge]]:
        """Every bidirectional pair once, as (forward, reverse)."""
        pairs = []
        for edge in self.edges:
            partner = self.pair_of(edge)
            if partner is not None and edge.index < partner.index:
                if self.is_forward(edge):
                    pairs.append((edge, partner))
                else:
                    pairs.append((partner, edge))
        return pairs

    def outgoing(self, node: GraphNode) -> list[GraphEdge]:
        return self._out.get(node.id, [])

    def incoming(self, node: GraphNode) -> list[GraphEdge]:
        return self._in.get(node.id, [])

    def neighbors(self, node: GraphNode) -> list[GraphNode]:
        """Directly connected nodes in either direction, deduplicated."""
        seen: set[NodeId] = set()
        result = []
        for edge in self.outgoing(node):
            if edge.target.id not in seen and edge.target is not node:
                seen.add(edge.target.id)
                result.append(edge.target)
        for edge in self.incoming(node):
            if edge.source.id not in seen and edge.source is not node:
                seen.add(edge.source.id)
                result.append(edge.source)
        return result

    def visible_nodes(self) -> list[GraphNode]:
        return [n for n in self.nodes if not n.hidden]

    def visible_edges(self) -> list[GraphEdge]:
        return [e for e in self.edges if not e.hidden]

    # --- Collapse / expand ---

    def descendants(self, node_id: NodeId) -> list[GraphNode]:
        """All nodes reachable from ``node_id`` along outgoing edges.

        Uses an explicit worklist over the index arena so cycles terminate.
        The start node itself is never part of the result, even when a cycle
        leads back to it.
        """
        start = self.get_node(node_id)
        if start is None:
            return []

        visited = {start.index}
        order: list[int] = []
        worklist = list(self._children[start.index])
        while worklist:
            idx = worklist.pop()
            if idx in visited:
                continue
            visited.add(idx)
            order.append(idx)
            worklist.extend(c for c in self._children[idx] if c not in visited)
        return [self.nodes[i] for i in sorted(order)]

    def collapse(self, node_id: NodeId) -> list[NodeId]:
        """Hide every descendant of ``node_id`` and their incident edges.

        Returns the ids hidden by this call.  Collapsing an already collapsed
        node is a no-op.
        """
        node = self.get_node(node_id)
        if node is None or node.collapsed:
            return []

        hidden = []
        for child in self.descendants(node_id):
            owners = self._hidden_by.setdefault(child.id, set())
            owners.add(node.id)
            if not child.hidden:
                child.hidden = True
                child.fx = None
                child.fy = None
                hidden.append(child.id)
        node.collapsed = True
        self._sync_edge_visibility()
        logger.debug(f"Collapsed {node_id!r}: {len(hidden)} nodes hidden")
        return hidden

    def expand(self, node_id: NodeId, rng: Optional[random.Random] = None) -> list[NodeId]:
        """Reveal the nodes hidden by collapsing ``node_id``.

        Nodes still hidden by another collapsed ancestor stay hidden.  Each
        revealed node is placed on a circle around the parent so it enters the
        simulation near where it belongs.
        """
        node = self.get_node(node_id)
        if node is None or not node.collapsed:
            return []

        rng = rng or random.Random()
        revealed: list[GraphNode] = []
        for child_id, owners in list(self._hidden_by.items()):
            if node.id not in owners:
                continue
            owners.discard(node.id)
            if owners:
                continue
            del self._hidden_by[child_id]
            child = self._node_map[child_id]
            child.hidden = False
            revealed.append(child)
        node.collapsed = False

        if revealed and node.is_placed:
            step = 2 * math.pi / len(revealed)
            for i, child in enumerate(revealed):
                angle = i * step
                jitter = 0.9 + rng.random() * 0.2
                child.x = node.x + EXPAND_RADIUS * math.cos(angle) * jitter
                child.y = node.y + EXPAND_RADIUS * math.sin(angle) * jitter
                child.vx = 0.0
                child.vy = 0.0

        self._sync_edge_visibility()
        logger.debug(f"Expanded {node_id!r}: {len(revealed)} nodes revealed")
        return [c.id for c in revealed]

    def _sync_edge_visibility(self):
        for edge in self.edges:
            edge.hidden = edge.source.hidden or edge.target.hidden
