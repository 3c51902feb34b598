"""
Coordinate spaces and view fitting for Edge Graph.

Node positions live in *simulation space*.  What the user sees is *screen
space*, related by a uniform scale ``k`` and a translation ``(x, y)``::

    screen = simulation * k + (x, y)

``ViewTransform`` is an immutable value; every function here takes it as an
argument and returns a new one, so nothing depends on a shared, mutable
"current transform".
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .models import GraphNode


@dataclass(frozen=True)
class ViewTransform:
    """Translate-then-scale transform from simulation to screen space."""
    x: float = 0.0
    y: float = 0.0
    k: float = 1.0


IDENTITY = ViewTransform()


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def intersects(self, other: "Rect") -> bool:
        return (
            self.x2 > other.x1 and self.x1 < other.x2
            and self.y2 > other.y1 and self.y1 < other.y2
        )

    def contains(self, other: "Rect") -> bool:
        return (
            self.x1 <= other.x1 and self.y1 <= other.y1
            and self.x2 >= other.x2 and self.y2 >= other.y2
        )


def to_screen(transform: ViewTransform, point: tuple[float, float]) -> tuple[float, float]:
    """Map a simulation-space point to screen space."""
    return (point[0] * transform.k + transform.x, point[1] * transform.k + transform.y)


def to_simulation(transform: ViewTransform, point: tuple[float, float]) -> tuple[float, float]:
    """Map a screen-space point to simulation space."""
    return ((point[0] - transform.x) / transform.k, (point[1] - transform.y) / transform.k)


def visible_rect(transform: ViewTransform, width: float, height: float) -> Rect:
    """The simulation-space rectangle currently on screen."""
    x1, y1 = to_simulation(transform, (0, 0))
    x2, y2 = to_simulation(transform, (width, height))
    return Rect(x1, y1, x2, y2)


def node_rect(node: GraphNode, radius: float) -> Rect:
    """Bounding box of a placed node's disc."""
    return Rect(node.x - radius, node.y - radius, node.x + radius, node.y + radius)


def compute_bounds(nodes: Iterable[GraphNode], inflate: float) -> Optional[Rect]:
    """Bounding box of every placed node, each inflated by ``inflate``.

    Returns None when no node has a finite position.
    """
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for node in nodes:
        if not node.is_placed or not math.isfinite(node.x) or not math.isfinite(node.y):
            continue
        min_x = min(min_x, node.x - inflate)
        min_y = min(min_y, node.y - inflate)
        max_x = max(max_x, node.x + inflate)
        max_y = max(max_y, node.y + inflate)
    if not math.isfinite(min_x):
        return None
    return Rect(min_x, min_y, max_x, max_y)


def clamp_scale(k: float, min_zoom: float, max_zoom: float) -> float:
    return max(min_zoom, min(max_zoom, k))


def fit_view(
    nodes: Iterable[GraphNode],
    width: float,
    height: float,
    node_radius: float,
    bounds_multiplier: float = 1.0,
    edge_padding: float = 0.0,
    fit_factor: float = 0.9,
    baseline_scale: float = 0.8,
    min_zoom: float = 0.1,
    max_zoom: float = 4.0,
) -> ViewTransform:
    """Transform that shows every node, centered, with padding.

    The scale is the smallest of the editorial ``baseline_scale`` and the
    fit-to-content scales on each axis, so small graphs are not blown up.
    The result is clamped to ``[min_zoom, max_zoom]``.
    """
    bounds = compute_bounds(nodes, node_radius * bounds_multiplier + edge_padding)
    if bounds is None or width <= 0 or height <= 0:
        return IDENTITY

    bw = max(bounds.width, 1e-6)
    bh = max(bounds.height, 1e-6)
    k = min(baseline_scale, width * fit_factor / bw, height * fit_factor / bh)
    k = clamp_scale(k, min_zoom, max_zoom)

    cx, cy = bounds.center
    return ViewTransform(x=width / 2 - cx * k, y=height / 2 - cy * k, k=k)


def zoom_at(
    transform: ViewTransform,
    point: tuple[float, float],
    factor: float,
    min_zoom: float,
    max_zoom: float,
) -> ViewTransform:
    """Scale by ``factor`` keeping the screen ``point`` fixed."""
    k = clamp_scale(transform.k * factor, min_zoom, max_zoom)
    sx, sy = to_simulation(transform, point)
    return ViewTransform(x=point[0] - sx * k, y=point[1] - sy * k, k=k)


def pan(transform: ViewTransform, dx: float, dy: float) -> ViewTransform:
    """Shift the view by a screen-space delta."""
    return ViewTransform(x=transform.x + dx, y=transform.y + dy, k=transform.k)


def wheel_factor(delta_y: float, delta_mode: int = 0) -> float:
    """Zoom factor for a wheel event, following browser delta modes.

    ``delta_mode`` is 0 for pixels, 1 for lines and 2 for pages.
    """
    if delta_mode == 1:
        scale = 0.05
    elif delta_mode == 2:
        scale = 1.0
    else:
        scale = 0.002
    return 2 ** (-delta_y * scale)


def place_info_box(
    anchor: tuple[float, float],
    size: tuple[float, float],
    canvas_size: tuple[float, float],
    clearance: float,
    margin: float = 10.0,
) -> Rect:
    """Place an overlay box next to a screen-space anchor.

    The box goes to the right of the anchor (beyond ``clearance``), flips to
    the left when it would overflow, and is then clamped so it stays fully
    inside the canvas.
    """
    ax, ay = anchor
    w, h = size
    cw, ch = canvas_size

    x = ax + clearance + margin
    if x + w > cw - margin:
        x = ax - clearance - margin - w
    y = ay - h / 2

    x = max(margin, min(x, cw - w - margin))
    y = max(margin, min(y, ch - h - margin))
    return Rect(x, y, x + w, y + h)
