"""
Hierarchy inference for Edge Graph.

Assigns every node a ``level`` (depth from the nearest root) plus its
``child_count`` and ``parent_count``:

  1. Count: every edge adds a child to its source and a parent to its target.
  2. Roots: nodes with no parents.  When every node has a parent (the graph
     is one big cycle), the nodes sharing the smallest parent count are used.
  3. Breadth-first traversal from the roots along outgoing edges; the first
     visit fixes a node's level at ``parent level + 1``.
  4. Anything still unleveled (unreachable from the roots) takes
     ``floor(mean level of its leveled neighbors) + 1``, or 0 when it has no
     leveled neighbor.  Nodes leveled earlier in this pass count as leveled
     for later ones.

This is a heuristic, not a topological sort.  Edges that close a cycle can
leave a node at a lower level than one of its predecessors, and ties follow
discovery order.
"""

from __future__ import annotations

import math
from collections import deque

from .graph import Graph
from .models import NodeId


def analyze_hierarchy(graph: Graph) -> int:
    """Fill in level, child_count and parent_count for every node.

    Returns the maximum level (0 for an empty graph).
    """
    nodes = graph.nodes
    if not nodes:
        return 0

    for node in nodes:
        node.level = None
        node.child_count = 0
        node.parent_count = 0

    for edge in graph.edges:
        edge.source.child_count += 1
        edge.target.parent_count += 1

    roots = [n for n in nodes if n.parent_count == 0]
    if not roots:
        fewest = min(n.parent_count for n in nodes)
        roots = [n for n in nodes if n.parent_count == fewest]

    visited: set[NodeId] = set()
    queue = deque()
    for root in roots:
        root.level = 0
        visited.add(root.id)
        queue.append(root)

    while queue:
        current = queue.popleft()
        for edge in graph.outgoing(current):
            child = edge.target
            if child.id in visited:
                continue
            visited.add(child.id)
            child.level = current.level + 1
            queue.append(child)

    for node in nodes:
        if node.level is not None:
            continue
        leveled = [n.level for n in graph.neighbors(node) if n.level is not None]
        if leveled:
            node.level = math.floor(sum(leveled) / len(leveled)) + 1
        else:
            node.level = 0

    return max(n.level for n in nodes)
