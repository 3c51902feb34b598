"""
Forces for the Edge Graph simulation.

Every force is a small strategy object with the same life cycle:

    initialize(nodes, rng)   called when the force is registered and
                               whenever the simulation's node list changes
    apply(alpha)             called once per tick; mutates velocities

The default ``apply`` asks ``velocity_delta(node, alpha)`` for each node and
adds the result, which is all the two layout forces need.  Pairwise forces
(links, repulsion, collision) override ``apply`` directly.  No force writes
positions except ``CenterForce``, which translates the whole graph.

Physical forces follow the d3-force formulas:

    LinkForce        spring per edge with a per-edge target distance
    ManyBodyForce    charge within ``distance_max``, Barnes-Hut approximated
    CollideForce     circle overlap resolution on predicted positions
    CenterForce      keeps the mean position on a point

Layout forces specific to Edge Graph:

    TypeLevelClusterForce      pulls nodes toward their (level, type) center,
                               harder vertically than horizontally
    RelationshipCohesionForce  pulls nodes sharing a dominant relationship
                               type toward their cluster centroid
"""

from __future__ import annotations

import math
import random
from collections import deque
from typing import Callable, Iterable, Optional, Union

from .models import GraphEdge, GraphNode, NodeId
from .organize import compute_bucket_centers, type_key


def _jiggle(rng: random.Random) -> float:
    return (rng.random() - 0.5) * 1e-6


def _grid(nodes: Iterable[GraphNode], cell: float, predicted: bool = False) -> dict[tuple[int, int], list[int]]:
    """Bucket node positions (indices into the iterable) into square cells."""
    grid: dict[tuple[int, int], list[int]] = {}
    for i, node in enumerate(nodes):
        x = node.x + node.vx if predicted else node.x
        y = node.y + node.vy if predicted else node.y
        grid.setdefault((math.floor(x / cell), math.floor(y / cell)), []).append(i)
    return grid


def _nearby(grid: dict[tuple[int, int], list[int]], x: float, y: float, cell: float) -> Iterable[int]:
    cx = math.floor(x / cell)
    cy = math.floor(y / cell)
    for gx in (cx - 1, cx, cx + 1):
        for gy in (cy - 1, cy, cy + 1):
            yield from grid.get((gx, gy), ())


class Force:
    """Base strategy: a per-node velocity delta applied every tick."""

    def __init__(self):
        self.nodes: list[GraphNode] = []
        self.rng = random.Random()

    def initialize(self, nodes: list[GraphNode], rng: random.Random):
        self.nodes = nodes
        self.rng = rng

    def velocity_delta(self, node: GraphNode, alpha: float) -> tuple[float, float]:
        return (0.0, 0.0)

    def apply(self, alpha: float):
        for node in self.nodes:
            dvx, dvy = self.velocity_delta(node, alpha)
            node.vx += dvx
            node.vy += dvy


# ---------------------------------------------------------------------------
# Physical forces
# ---------------------------------------------------------------------------

class LinkForce(Force):
    """Spring force along edges.

    ``distance`` is either a constant or a callable ``edge -> float``.  When
    ``strength`` is None each link gets ``1 / min(degree(source),
    degree(target))`` so hubs are not pulled apart by their many springs.
    Bias splits the correction so the lower-degree end moves more.
    """

    def __init__(
        self,
        links: list[GraphEdge],
        distance: Union[float, Callable[[GraphEdge], float]] = 30.0,
        strength: Optional[float] = None,
        iterations: int = 1,
    ):
        super().__init__()
        self._candidates = links
        self.links: list[GraphEdge] = []
        self.distance = distance
        self.strength = strength
        self.iterations = iterations
        self._distances: list[float] = []
        self._strengths: list[float] = []
        self._bias: list[float] = []

    def initialize(self, nodes: list[GraphNode], rng: random.Random):
        super().initialize(nodes, rng)
        present = {id(n) for n in nodes}
        self.links = [
            l for l in self._candidates
            if id(l.source) in present and id(l.target) in present
        ]

        count: dict[NodeId, int] = {}
        for link in self.links:
            count[link.source.id] = count.get(link.source.id, 0) + 1
            count[link.target.id] = count.get(link.target.id, 0) + 1

        self._bias = []
        self._strengths = []
        self._distances = []
        for link in self.links:
            cs = count[link.source.id]
            ct = count[link.target.id]
            self._bias.append(cs / (cs + ct))
            self._strengths.append(
                self.strength if self.strength is not None else 1 / min(cs, ct)
            )
            self._distances.append(
                self.distance(link) if callable(self.distance) else float(self.distance)
            )

    def set_links(self, links: list[GraphEdge]):
        self._candidates = links
        self.initialize(self.nodes, self.rng)

    def apply(self, alpha: float):
        for _ in range(self.iterations):
            for i, link in enumerate(self.links):
                s = link.source
                t = link.target
                x = (t.x + t.vx - s.x - s.vx) or _jiggle(self.rng)
                y = (t.y + t.vy - s.y - s.vy) or _jiggle(self.rng)
                length = math.sqrt(x * x + y * y)
                length = (length - self._distances[i]) / length * alpha * self._strengths[i]
                x *= length
                y *= length
                b = self._bias[i]
                t.vx -= x * b
                t.vy -= y * b
                s.vx += x * (1 - b)
                s.vy += y * (1 - b)


class _Quad:
    """Square cell of the charge quadtree with the count and position sums of its nodes."""

    __slots__ = ("x0", "y0", "size", "children", "points", "count", "sx", "sy")

    def __init__(self, x0: float, y0: float, size: float):
        self.x0 = x0
        self.y0 = y0
        self.size = size
        self.children: Optional[list[_Quad]] = None
        self.points: list[GraphNode] = []
        self.count = 0
        self.sx = 0.0
        self.sy = 0.0

    def child_for(self, x: float, y: float) -> "_Quad":
        half = self.size / 2
        right = x >= self.x0 + half
        bottom = y >= self.y0 + half
        return self.children[right + 2 * bottom]

    def split(self):
        half = self.size / 2
        self.children = [
            _Quad(self.x0, self.y0, half),
            _Quad(self.x0 + half, self.y0, half),
            _Quad(self.x0, self.y0 + half, half),
            _Quad(self.x0 + half, self.y0 + half, half),
        ]
        for point in self.points:
            child = self.child_for(point.x, point.y)
            child.points.append(point)
            child.count += 1
            child.sx += point.x
            child.sy += point.y
        self.points = []


# Nodes still sharing a cell at this depth share a leaf.
QUADTREE_MAX_DEPTH = 32


def build_quadtree(nodes: list[GraphNode]) -> Optional[_Quad]:
    """Square quadtree over node positions; leaves hold coincident nodes."""
    if not nodes:
        return None
    xs = [n.x for n in nodes]
    ys = [n.y for n in nodes]
    x0 = min(xs)
    y0 = min(ys)
    size = max(max(xs) - x0, max(ys) - y0)
    # widen a little so the maximum lands strictly inside the root
    size = size * (1 + 1e-9) + 1e-9 if size > 0 else 1.0
    root = _Quad(x0, y0, size)

    for node in nodes:
        quad = root
        depth = 0
        while True:
            quad.count += 1
            quad.sx += node.x
            quad.sy += node.y
            if quad.children is not None:
                quad = quad.child_for(node.x, node.y)
                depth += 1
                continue
            first = quad.points[0] if quad.points else None
            if first is None or depth >= QUADTREE_MAX_DEPTH or (first.x == node.x and first.y == node.y):
                quad.points.append(node)
                break
            quad.split()
            quad = quad.child_for(node.x, node.y)
            depth += 1
    return root


class ManyBodyForce(Force):
    """Charge between node pairs; negative strength repels.

    Uses the Barnes-Hut approximation: a quadtree cell whose width is small
    relative to its distance (``width / distance < theta``) acts as a single
    charge at its centroid.  ``theta`` of 0 computes every pair exactly.
    Pairs farther apart than ``distance_max`` do not interact.
    ``interactions`` counts the node-cell and node-node terms of the last
    ``apply``.
    """

    def __init__(
        self,
        strength: float = -30.0,
        distance_min: float = 1.0,
        distance_max: float = math.inf,
        theta: float = 0.9,
    ):
        super().__init__()
        self.strength = strength
        self.distance_min = distance_min
        self.distance_max = distance_max
        self.theta = theta
        self.interactions = 0

    def apply(self, alpha: float):
        self.interactions = 0
        root = build_quadtree(self.nodes)
        if root is None:
            return

        min2 = self.distance_min * self.distance_min
        max2 = self.distance_max * self.distance_max
        theta2 = self.theta * self.theta
        k = self.strength * alpha
        interactions = 0

        for node in self.nodes:
            nx, ny = node.x, node.y
            vx = vy = 0.0
            stack = [root]
            while stack:
                quad = stack.pop()
                x = quad.sx / quad.count - nx
                y = quad.sy / quad.count - ny
                l = x * x + y * y

                if quad.size * quad.size < l * theta2:
                    if l < max2:
                        if l < min2:
                            l = math.sqrt(min2 * l)
                        w = k * quad.count / l
                        vx += x * w
                        vy += y * w
                        interactions += 1
                    continue

                if quad.children is not None:
                    stack.extend(c for c in quad.children if c.count)
                    continue
                if l >= max2:
                    continue

                for other in quad.points:
                    if other is node:
                        continue
                    x = other.x - nx
                    y = other.y - ny
                    l = x * x + y * y
                    if l >= max2:
                        continue
                    if x == 0:
                        x = _jiggle(self.rng)
                        l += x * x
                    if y == 0:
                        y = _jiggle(self.rng)
                        l += y * y
                    if l < min2:
                        l = math.sqrt(min2 * l)
                    vx += x * k / l
                    vy += y * k / l
                    interactions += 1

            node.vx += vx
            node.vy += vy

        self.interactions = interactions


class CollideForce(Force):
    """Treats nodes as circles of ``radius`` and resolves overlaps.

    Works on predicted positions (``x + vx``) like d3, running
    ``iterations`` relaxation passes per tick.  ``radius`` and ``strength``
    may be changed between ticks (the drag interaction does so).
    """

    def __init__(self, radius: float = 1.0, strength: float = 1.0, iterations: int = 1):
        super().__init__()
        self.radius = radius
        self.strength = strength
        self.iterations = iterations

    def apply(self, alpha: float):
        nodes = self.nodes
        r = self.radius
        reach = 2 * r
        if reach <= 0 or not nodes:
            return

        for _ in range(self.iterations):
            grid = _grid(nodes, reach, predicted=True)
            for i, node in enumerate(nodes):
                xi = node.x + node.vx
                yi = node.y + node.vy
                for j in _nearby(grid, xi, yi, reach):
                    if j <= i:
                        continue
                    other = nodes[j]
                    x = xi - other.x - other.vx
                    y = yi - other.y - other.vy
                    dist2 = x * x + y * y
                    if dist2 >= reach * reach:
                        continue
                    if x == 0:
                        x = _jiggle(self.rng)
                        dist2 += x * x
                    if y == 0:
                        y = _jiggle(self.rng)
                        dist2 += y * y
                    dist = math.sqrt(dist2)
                    push = (reach - dist) / dist * self.strength
                    x *= push
                    y *= push
                    # equal radii: each circle takes half the correction
                    node.vx += x * 0.5
                    node.vy += y * 0.5
                    other.vx -= x * 0.5
                    other.vy -= y * 0.5


class CenterForce(Force):
    """Translates every node so their mean position sits on ``(x, y)``."""

    def __init__(self, x: float = 0.0, y: float = 0.0, strength: float = 1.0):
        super().__init__()
        self.x = x
        self.y = y
        self.strength = strength

    def apply(self, alpha: float):
        if not self.nodes:
            return
        n = len(self.nodes)
        sx = (sum(node.x for node in self.nodes) / n - self.x) * self.strength
        sy = (sum(node.y for node in self.nodes) / n - self.y) * self.strength
        for node in self.nodes:
            node.x -= sx
            node.y -= sy


# ---------------------------------------------------------------------------
# Layout forces
# ---------------------------------------------------------------------------

class TypeLevelClusterForce(Force):
    """Pull each free node toward the center of its ``(level, type)`` bucket.

    Centers use the same section/row geometry as the initial organizer and
    are recomputed by ``resize`` so they follow the canvas size.  The
    vertical coefficient is larger than the horizontal one: levels hold
    their rows firmly while type columns are only suggested.
    """

    def __init__(
        self,
        width: float,
        height: float,
        strength_x: float = 0.05,
        strength_y: float = 0.15,
        margin_top: float = 100.0,
        margin_bottom: float = 100.0,
    ):
        super().__init__()
        self.width = width
        self.height = height
        self.strength_x = strength_x
        self.strength_y = strength_y
        self.margin_top = margin_top
        self.margin_bottom = margin_bottom
        self.centers: dict[tuple[int, str], tuple[float, float]] = {}

    def initialize(self, nodes: list[GraphNode], rng: random.Random):
        super().initialize(nodes, rng)
        self._compute_centers()

    def resize(self, width: float, height: float):
        self.width = width
        self.height = height
        self._compute_centers()

    def _compute_centers(self):
        self.centers = compute_bucket_centers(
            self.nodes, self.width, self.height, self.margin_top, self.margin_bottom
        )

    def velocity_delta(self, node: GraphNode, alpha: float) -> tuple[float, float]:
        if node.is_pinned:
            return (0.0, 0.0)
        center = self.centers.get((node.level or 0, type_key(node)))
        if center is None:
            return (0.0, 0.0)
        return (
            (center[0] - node.x) * self.strength_x * alpha,
            (center[1] - node.y) * self.strength_y * alpha,
        )


class RelationshipCohesionForce(Force):
    """Soft pull of relationship clusters toward their centroids.

    A node's *primary relationship* is the relationship name under which it
    has the most distinct neighbors (first seen wins ties).  Clusters grow
    breadth-first from each unclustered node along edges of that node's
    primary relationship, absorbing neighbors whose own primary relationship
    matches.  Singleton clusters are dropped.
    """

    def __init__(self, links: list[GraphEdge], strength: float = 0.03):
        super().__init__()
        self.links = links
        self.strength = strength
        self.primary: dict[NodeId, Optional[str]] = {}
        self.clusters: list[list[GraphNode]] = []
        self._membership: dict[NodeId, int] = {}
        self._centroids: list[tuple[float, float]] = []

    def initialize(self, nodes: list[GraphNode], rng: random.Random):
        super().initialize(nodes, rng)
        present = {id(n) for n in nodes}
        links = [l for l in self.links if id(l.source) in present and id(l.target) in present]

        adjacency: dict[NodeId, list[tuple[str, GraphNode]]] = {n.id: [] for n in nodes}
        for link in links:
            if link.source is link.target:
                continue
            adjacency[link.source.id].append((link.relationship, link.target))
            adjacency[link.target.id].append((link.relationship, link.source))

        self.primary = {}
        for node in nodes:
            distinct: dict[str, set[NodeId]] = {}
            for rel, neighbor in adjacency[node.id]:
                distinct.setdefault(rel, set()).add(neighbor.id)
            if distinct:
                self.primary[node.id] = max(distinct, key=lambda rel: len(distinct[rel]))
            else:
                self.primary[node.id] = None

        self.clusters = []
        assigned: set[NodeId] = set()
        for node in nodes:
            rel = self.primary[node.id]
            if rel is None or node.id in assigned:
                continue
            assigned.add(node.id)
            members = [node]
            queue = deque([node])
            while queue:
                current = queue.popleft()
                for link_rel, neighbor in adjacency[current.id]:
                    if link_rel != rel or neighbor.id in assigned:
                        continue
                    if self.primary.get(neighbor.id) != rel:
                        continue
                    assigned.add(neighbor.id)
                    members.append(neighbor)
                    queue.append(neighbor)
            if len(members) > 1:
                self.clusters.append(members)

        self._membership = {}
        for i, members in enumerate(self.clusters):
            for member in members:
                self._membership[member.id] = i

    def primary_relationship(self, node: GraphNode) -> Optional[str]:
        return self.primary.get(node.id)

    def set_links(self, links: list[GraphEdge]):
        self.links = links
        self.initialize(self.nodes, self.rng)

    def apply(self, alpha: float):
        self._centroids = []
        for members in self.clusters:
            n = len(members)
            self._centroids.append((
                sum(m.x for m in members) / n,
                sum(m.y for m in members) / n,
            ))
        super().apply(alpha)

    def velocity_delta(self, node: GraphNode, alpha: float) -> tuple[float, float]:
        cluster = self._membership.get(node.id)
        if cluster is None or node.is_pinned:
            return (0.0, 0.0)
        cx, cy = self._centroids[cluster]
        k = self.strength * alpha
        return ((cx - node.x) * k, (cy - node.y) * k)


# ---------------------------------------------------------------------------
# Link distance policy
# ---------------------------------------------------------------------------

class LinkDistancePolicy:
    """Target spring length for an edge, from the edge and its endpoints.

    Starts at ``base``; grows by ``type_increment`` across types and by
    ``level_increment`` per level of difference; relationships listed as
    primary are shortened and those listed as secondary lengthened.
    """

    def __init__(
        self,
        base: float = 500.0,
        type_increment: float = 150.0,
        level_increment: float = 100.0,
        primary: Iterable[str] = (),
        secondary: Iterable[str] = (),
        primary_factor: float = 0.7,
        secondary_factor: float = 1.3,
    ):
        self.base = base
        self.type_increment = type_increment
        self.level_increment = level_increment
        self.primary = frozenset(primary)
        self.secondary = frozenset(secondary)
        self.primary_factor = primary_factor
        self.secondary_factor = secondary_factor

    @classmethod
    def from_config(cls, config) -> "LinkDistancePolicy":
        return cls(
            base=config.link_distance,
            type_increment=config.type_distance_increment,
            level_increment=config.level_distance_increment,
            primary=config.primary_relationships,
            secondary=config.secondary_relationships,
            primary_factor=config.primary_distance_factor,
            secondary_factor=config.secondary_distance_factor,
        )

    def __call__(self, edge: GraphEdge) -> float:
        source = edge.source
        target = edge.target
        distance = self.base
        if source.type != target.type:
            distance += self.type_increment
        if source.level is not None and target.level is not None and source.level != target.level:
            distance += self.level_increment * abs(source.level - target.level)
        if edge.relationship in self.primary:
            distance *= self.primary_factor
        elif edge.relationship in self.secondary:
            distance *= self.secondary_factor
        return distance
