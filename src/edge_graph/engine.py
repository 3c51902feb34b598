"""
Layout engine for Edge Graph.

``LayoutEngine`` owns one loaded graph together with the simulation running
over it and the current view transform.  It is the only place that writes
node pins, swaps force parameters or changes the node set.  The interaction
controller and the hosts go through its methods:

    initialize()             hierarchy → initial layout → forces → view fit
    step() / run()           advance the simulation
    pin() / release()        fix or free a node
    begin_drag() / drag_to() / end_drag()
    push_neighbors()         local collision avoidance around a dragged node
    resize() / fit_view() / set_transform()
    collapse() / expand()    hide or reveal a node's descendants

All of it runs on a single thread; there is no locking because nothing else
touches the node list concurrently.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from .config import GraphConfig
from .forces import (
    CenterForce,
    CollideForce,
    LinkDistancePolicy,
    LinkForce,
    ManyBodyForce,
    RelationshipCohesionForce,
    TypeLevelClusterForce,
)
from .graph import Graph
from .hierarchy import analyze_hierarchy
from .models import GraphNode, NodeId
from .organize import OrganizeOptions, organize_graph
from .simulation import Simulation
from .viewport import IDENTITY, ViewTransform, fit_view

logger = logging.getLogger(__name__)


class LayoutEngine:
    """Owns the graph arrays, the simulation and the view transform."""

    def __init__(
        self,
        graph: Graph,
        config: Optional[GraphConfig] = None,
        width: float = 1200,
        height: float = 800,
        seed: Optional[int] = None,
    ):
        self.graph = graph
        self.config = config or GraphConfig()
        self.width = width
        self.height = height
        self.transform: ViewTransform = IDENTITY
        self.max_level = 0
        self.link_distance = LinkDistancePolicy.from_config(self.config)
        self.simulation = Simulation(
            alpha_min=self.config.alpha_min,
            alpha_decay=self.config.alpha_decay,
            velocity_decay=self.config.velocity_decay,
            seed=seed,
        )
        self._saved_collide: Optional[tuple[float, float]] = None

    # --- Setup ---

    @property
    def nodes(self) -> list[GraphNode]:
        return self.graph.nodes

    @property
    def node_radius(self) -> float:
        return self.config.node_radius

    def initialize(self) -> "LayoutEngine":
        """Compute levels, place nodes, install forces and fit the view."""
        self.max_level = analyze_hierarchy(self.graph)
        passes = organize_graph(
            self.graph, OrganizeOptions.from_config(self.config, self.width, self.height)
        )
        self.simulation.set_nodes(self.graph.visible_nodes())
        self._install_forces()
        self.fit_view()
        logger.info(
            f"Layout initialized: {len(self.graph.nodes)} nodes, "
            f"{self.max_level + 1} levels, {passes} overlap passes"
        )
        return self

    def _install_forces(self):
        cfg = self.config
        links = self.graph.visible_edges()
        sim = self.simulation
        sim.set_force("link", LinkForce(links, distance=self.link_distance))
        sim.set_force("charge", ManyBodyForce(
            strength=cfg.charge_strength,
            distance_max=cfg.charge_distance_max,
            theta=cfg.charge_theta,
        ))
        sim.set_force("collide", CollideForce(
            radius=cfg.node_radius * cfg.collide_radius_factor,
            strength=cfg.collide_strength,
            iterations=cfg.collide_iterations,
        ))
        sim.set_force("center", CenterForce(self.width / 2, self.height / 2))
        sim.set_force("cluster", TypeLevelClusterForce(
            self.width, self.height,
            strength_x=cfg.cluster_strength_x,
            strength_y=cfg.cluster_strength_y,
        ))
        sim.set_force("cohesion", RelationshipCohesionForce(links, strength=cfg.cohesion_strength))

    # --- Simulation ---

    def step(self) -> bool:
        """Advance one scheduled tick; False once the simulation is at rest."""
        return self.simulation.step()

    def run(self, max_ticks: Optional[int] = None) -> int:
        return self.simulation.run(max_ticks)

    @property
    def is_running(self) -> bool:
        return self.simulation.running

    def reheat(self, alpha: float = 1.0):
        self.simulation.alpha = alpha
        self.simulation.restart()

    # --- Pins ---

    def _require(self, node_id: NodeId) -> GraphNode:
        node = self.graph.get_node(node_id)
        if node is None:
            raise KeyError(f"Unknown node id: {node_id!r}")
        return node

    def pin(self, node_id: NodeId, x: float, y: float) -> GraphNode:
        """Fix a node at ``(x, y)`` in simulation space."""
        node = self._require(node_id)
        node.x = node.fx = x
        node.y = node.fy = y
        node.vx = 0.0
        node.vy = 0.0
        return node

    def release(self, node_id: NodeId) -> GraphNode:
        """Hand a pinned node back to the simulation."""
        node = self._require(node_id)
        node.fx = None
        node.fy = None
        return node

    # --- Hit testing ---

    def node_at(self, x: float, y: float) -> Optional[GraphNode]:
        """First visible node (in node order) whose disc contains the point."""
        r2 = self.node_radius * self.node_radius
        for node in self.graph.nodes:
            if node.hidden or not node.is_placed:
                continue
            dx = x - node.x
            dy = y - node.y
            if dx * dx + dy * dy < r2:
                return node
        return None

    # --- Dragging ---

    def begin_drag(self, node_id: NodeId) -> GraphNode:
        """Pin the node where it is and keep the simulation gently warm."""
        cfg = self.config
        node = self._require(node_id)
        self.pin(node_id, node.x, node.y)

        collide = self.simulation.force("collide")
        if collide is not None:
            self._saved_collide = (collide.radius, collide.strength)
            collide.radius = cfg.node_radius * cfg.drag_collide_radius_factor
            collide.strength = cfg.drag_collide_strength

        self.simulation.alpha_target = cfg.drag_alpha_target
        self.simulation.restart()
        return node

    def drag_to(self, node_id: NodeId, x: float, y: float) -> GraphNode:
        """Move the dragged node and shove its neighbors out of the way."""
        node = self.pin(node_id, x, y)
        self.push_neighbors(node_id)
        return node

    def end_drag(self, node_id: NodeId) -> GraphNode:
        """Restore collision settings and let the simulation settle."""
        cfg = self.config
        node = self._require(node_id)

        collide = self.simulation.force("collide")
        if collide is not None:
            radius, strength = self._saved_collide or (
                cfg.node_radius * cfg.collide_radius_factor, cfg.collide_strength,
            )
            collide.radius = radius
            collide.strength = strength
        self._saved_collide = None

        if cfg.release_on_drag_end:
            self.release(node_id)

        self.simulation.alpha_target = 0.0
        self.simulation.alpha = cfg.release_alpha
        self.simulation.restart()
        return node

    def push_neighbors(self, node_id: NodeId) -> int:
        """Push every node near the dragged one away from it.

        Nodes within ``node_radius * avoidance_radius_factor`` move along the
        unit vector from the dragged node (a random direction when exactly
        coincident) by ``overlap * avoidance_strength``.  Pinned nodes have
        their pin moved at half that strength; free nodes get the push on
        both position and velocity so the next tick does not undo it.

        Returns the number of nodes pushed.
        """
        cfg = self.config
        dragged = self._require(node_id)
        min_distance = cfg.node_radius * cfg.avoidance_radius_factor
        pushed = 0

        for node in self.graph.nodes:
            if node is dragged or node.hidden or not node.is_placed:
                continue
            dx = node.x - dragged.x
            dy = node.y - dragged.y
            dist = math.hypot(dx, dy)
            if dist >= min_distance:
                continue

            if dist > 0:
                ux, uy = dx / dist, dy / dist
            else:
                angle = self.simulation.rng.random() * 2 * math.pi
                ux, uy = math.cos(angle), math.sin(angle)
            push = (min_distance - dist) * cfg.avoidance_strength

            if node.is_pinned:
                half = push * 0.5
                if node.fx is not None:
                    node.fx += ux * half
                    node.x = node.fx
                if node.fy is not None:
                    node.fy += uy * half
                    node.y = node.fy
            else:
                node.x += ux * push
                node.y += uy * push
                node.vx += ux * push
                node.vy += uy * push
            pushed += 1
        return pushed

    # --- View ---

    def fit_view(self) -> ViewTransform:
        """Re-derive the transform that shows the whole graph."""
        cfg = self.config
        self.transform = fit_view(
            self.graph.visible_nodes(),
            self.width,
            self.height,
            node_radius=cfg.node_radius,
            bounds_multiplier=cfg.bounds_multiplier,
            edge_padding=cfg.edge_padding,
            fit_factor=cfg.fit_factor,
            baseline_scale=cfg.baseline_scale,
            min_zoom=cfg.min_zoom,
            max_zoom=cfg.max_zoom,
        )
        return self.transform

    def set_transform(self, transform: ViewTransform):
        self.transform = transform

    def resize(self, width: float, height: float) -> ViewTransform:
        """Track a new canvas size: move the layout centers and refit."""
        self.width = width
        self.height = height
        center = self.simulation.force("center")
        if center is not None:
            center.x = width / 2
            center.y = height / 2
        cluster = self.simulation.force("cluster")
        if cluster is not None:
            cluster.resize(width, height)
        return self.fit_view()

    # --- Collapse / expand ---

    def collapse(self, node_id: NodeId) -> list[NodeId]:
        hidden = self.graph.collapse(node_id)
        if hidden:
            self._sync_simulation()
        return hidden

    def expand(self, node_id: NodeId) -> list[NodeId]:
        revealed = self.graph.expand(node_id, rng=self.simulation.rng)
        if revealed:
            self._sync_simulation()
        return revealed

    def _sync_simulation(self):
        links = self.graph.visible_edges()
        self.simulation.set_nodes(self.graph.visible_nodes())
        for name in ("link", "cohesion"):
            force = self.simulation.force(name)
            if force is not None:
                force.set_links(links)
        self.reheat(1.0)

    # --- Reporting ---

    def stats(self) -> dict:
        return {
            "nodes": len(self.graph.nodes),
            "edges": len(self.graph.edges),
            "visible_nodes": len(self.simulation.nodes),
            "bidirectional_pairs": len(self.graph.bidirectional_pairs()),
            "max_level": self.max_level,
            "alpha": round(self.simulation.alpha, 5),
            "running": self.simulation.running,
            "ticks": self.simulation.ticks,
            "transform": {"x": self.transform.x, "y": self.transform.y, "k": self.transform.k},
        }
