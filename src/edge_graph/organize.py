"""
Initial layout organizer for Edge Graph.

Places every node before the physics loop starts, so the first frame is
already a readable layout rather than a random scatter.

Nodes are bucketed by ``(level, type)``:

  - Each level gets a row.  Its vertical position is proportional to
    ``level / max_level`` inside the viewport height, between the top and
    bottom margins (a single-level graph sits on the vertical center).
  - Within a level, each distinct type gets one horizontal section of width
    ``viewport_width / (type_count + 1)``; the section center is where that
    type's nodes are laid out.
  - Small buckets are laid out as a single row.  Buckets larger than
    ``grid_threshold`` become a square-ish grid with
    ``row_size = ceil(sqrt(count * 1.5))``.
  - Hub nodes (more than ``hub_threshold`` children or parents) are clamped
    into the central band of the viewport so highly connected nodes sit in
    the foreground.

A fixed number of overlap-resolution passes then pushes apart any pair closer
than the minimum separation.  The same bucket geometry is reused by the
type/level clustering force (see ``edge_graph.forces``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .graph import Graph
from .models import GraphNode

GOLDEN_ANGLE = math.pi * (3 - math.sqrt(5))


@dataclass
class OrganizeOptions:
    """Layout options for the initial organizer."""
    width: float = 1200.0
    height: float = 800.0
    margin_top: float = 100.0
    margin_bottom: float = 100.0
    node_radius: float = 60.0
    node_spacing_factor: float = 2.5
    grid_threshold: int = 7
    hub_threshold: int = 5
    hub_band_min: float = 0.3
    hub_band_max: float = 0.7
    overlap_passes: int = 5
    min_separation_factor: float = 2.2
    same_level_push: float = 1.2

    @classmethod
    def from_config(cls, config, width: float, height: float) -> "OrganizeOptions":
        """Derive options from a ``GraphConfig`` and the canvas size."""
        return cls(
            width=width,
            height=height,
            node_radius=config.node_radius,
            node_spacing_factor=config.node_spacing_factor,
            grid_threshold=config.grid_threshold,
            hub_threshold=config.hub_threshold,
            overlap_passes=config.overlap_passes,
            min_separation_factor=config.min_separation_factor,
        )


def type_key(node: GraphNode) -> str:
    """Bucket key for a node's type (untyped nodes share the empty key)."""
    return node.type or ""


def group_by_level_and_type(nodes: list[GraphNode]) -> dict[int, dict[str, list[GraphNode]]]:
    """Bucket nodes by level, then by type.

    Levels are ascending and types within a level are sorted, so the result
    is deterministic; node order inside a bucket follows the input order.
    """
    grouped: dict[int, dict[str, list[GraphNode]]] = {}
    for node in nodes:
        level = node.level or 0
        grouped.setdefault(level, {}).setdefault(type_key(node), []).append(node)

    return {
        level: {t: grouped[level][t] for t in sorted(grouped[level])}
        for level in sorted(grouped)
    }


def level_y(level: int, max_level: int, height: float, margin_top: float, margin_bottom: float) -> float:
    """Vertical position of a level row."""
    if max_level <= 0:
        return height / 2
    usable = max(0.0, height - margin_top - margin_bottom)
    return margin_top + (level / max_level) * usable


def section_x(type_index: int, type_count: int, width: float) -> float:
    """Horizontal center of the section for the ``type_index``-th type."""
    return (type_index + 1) * width / (type_count + 1)


def compute_bucket_centers(
    nodes: list[GraphNode],
    width: float,
    height: float,
    margin_top: float = 100.0,
    margin_bottom: float = 100.0,
) -> dict[tuple[int, str], tuple[float, float]]:
    """Target center for every ``(level, type)`` bucket."""
    grouped = group_by_level_and_type(nodes)
    if not grouped:
        return {}
    max_level = max(grouped)

    centers: dict[tuple[int, str], tuple[float, float]] = {}
    for level, by_type in grouped.items():
        y = level_y(level, max_level, height, margin_top, margin_bottom)
        for i, t in enumerate(by_type):
            centers[(level, t)] = (section_x(i, len(by_type), width), y)
    return centers


def organize_graph(graph: Graph, options: Optional[OrganizeOptions] = None) -> int:
    """Assign an initial ``(x, y)`` to every node.

    Expects ``analyze_hierarchy`` to have run.  Velocities are reset.
    Returns the number of overlap-resolution passes that ran.
    """
    opts = options or OrganizeOptions()
    nodes = graph.nodes
    if not nodes:
        return 0

    centers = compute_bucket_centers(nodes, opts.width, opts.height, opts.margin_top, opts.margin_bottom)
    spacing = opts.node_radius * opts.node_spacing_factor

    for level, by_type in group_by_level_and_type(nodes).items():
        for t, bucket in by_type.items():
            cx, cy = centers[(level, t)]
            _place_bucket(bucket, cx, cy, spacing, opts)

    min_distance = opts.node_radius * opts.min_separation_factor
    return resolve_overlaps(nodes, min_distance, opts.overlap_passes, opts.same_level_push)


def _place_bucket(bucket: list[GraphNode], cx: float, cy: float, spacing: float, opts: OrganizeOptions):
    count = len(bucket)
    if count > opts.grid_threshold:
        row_size = math.ceil(math.sqrt(count * 1.5))
        rows = math.ceil(count / row_size)
    else:
        row_size = count
        rows = 1

    hub_min = opts.width * opts.hub_band_min
    hub_max = opts.width * opts.hub_band_max

    for i, node in enumerate(bucket):
        col = i % row_size
        row = i // row_size
        x = cx + (col - (row_size - 1) / 2) * spacing
        y = cy + (row - (rows - 1) / 2) * spacing

        if node.child_count > opts.hub_threshold or node.parent_count > opts.hub_threshold:
            x = max(hub_min, min(hub_max, x))

        node.x = x
        node.y = y
        node.vx = 0.0
        node.vy = 0.0


def resolve_overlaps(
    nodes: list[GraphNode],
    min_distance: float,
    passes: int = 5,
    same_level_push: float = 1.2,
) -> int:
    """Push apart every pair of nodes closer than ``min_distance``.

    Each member of an overlapping pair moves half the overlap along the
    connecting vector (a little more for same-level pairs).  Coincident nodes
    are split along a direction derived from their indices, so the result is
    deterministic.  Stops early after a pass that moves nothing.

    Returns the number of passes that ran.
    """
    placed = [n for n in nodes if n.is_placed]
    ran = 0
    for _ in range(passes):
        ran += 1
        moved = False
        for i, a in enumerate(placed):
            for j in range(i + 1, len(placed)):
                b = placed[j]
                dx = b.x - a.x
                dy = b.y - a.y
                dist = math.hypot(dx, dy)
                if dist >= min_distance:
                    continue

                if dist == 0:
                    angle = (i + j) * GOLDEN_ANGLE
                    ux, uy = math.cos(angle), math.sin(angle)
                else:
                    ux, uy = dx / dist, dy / dist

                push = (min_distance - dist) / 2
                if a.level == b.level:
                    push *= same_level_push

                a.x -= ux * push
                a.y -= uy * push
                b.x += ux * push
                b.y += uy * push
                moved = True
        if not moved:
            break
    return ran
