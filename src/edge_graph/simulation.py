"""
Force simulation loop for Edge Graph.

A velocity-Verlet integrator with the d3-force contract:

  - ``alpha`` is the temperature.  Each tick moves it toward
    ``alpha_target`` by ``alpha_decay``; once it drops below ``alpha_min``
    the simulation stops stepping.
  - Forces are named and replaceable, applied in registration order.
  - After the forces run, pinned nodes (``fx``/``fy``) snap to their pin
    with zero velocity; free nodes have their velocity damped by
    ``velocity_decay`` and then added to their position.
  - Tick callbacks fire after every ``step``; end callbacks fire once when
    the simulation comes to rest.

Everything runs on the caller's thread.  The simulation holds the node list
it is given, so position updates are visible to every other holder of those
node objects.
"""

from __future__ import annotations

import logging
import math
import random
from typing import Callable, Optional

from .forces import Force
from .models import GraphNode

logger = logging.getLogger(__name__)

INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))


class Simulation:
    """Runs registered forces over a node list, one tick at a time."""

    def __init__(
        self,
        nodes: Optional[list[GraphNode]] = None,
        alpha: float = 1.0,
        alpha_min: float = 0.001,
        alpha_decay: float = 0.0228,
        alpha_target: float = 0.0,
        velocity_decay: float = 0.4,
        seed: Optional[int] = None,
    ):
        self.alpha = alpha
        self.alpha_min = alpha_min
        self.alpha_decay = alpha_decay
        self.alpha_target = alpha_target
        self.velocity_decay = velocity_decay
        self.rng = random.Random(seed)
        self.running = True
        self.ticks = 0

        self._nodes: list[GraphNode] = []
        self._forces: dict[str, Force] = {}
        self._tick_callbacks: list[Callable[["Simulation"], None]] = []
        self._end_callbacks: list[Callable[["Simulation"], None]] = []

        self.set_nodes(nodes or [])

    # --- Nodes and forces ---

    @property
    def nodes(self) -> list[GraphNode]:
        return self._nodes

    def set_nodes(self, nodes: list[GraphNode]):
        """Replace the node list and re-initialize every force."""
        self._nodes = nodes
        self._initialize_nodes()
        for force in self._forces.values():
            force.initialize(self._nodes, self.rng)

    def _initialize_nodes(self):
        for i, node in enumerate(self._nodes):
            if node.fx is not None:
                node.x = node.fx
            if node.fy is not None:
                node.y = node.fy
            if node.x is None or node.y is None:
                radius = INITIAL_RADIUS * math.sqrt(0.5 + i)
                angle = i * INITIAL_ANGLE
                node.x = radius * math.cos(angle)
                node.y = radius * math.sin(angle)
            if not math.isfinite(node.vx) or not math.isfinite(node.vy):
                node.vx = 0.0
                node.vy = 0.0

    def force(self, name: str) -> Optional[Force]:
        return self._forces.get(name)

    def set_force(self, name: str, force: Force) -> Force:
        """Register (or replace) a named force."""
        force.initialize(self._nodes, self.rng)
        self._forces[name] = force
        return force

    def remove_force(self, name: str):
        self._forces.pop(name, None)

    def force_names(self) -> list[str]:
        return list(self._forces)

    # --- Callbacks ---

    def on_tick(self, callback: Callable[["Simulation"], None]):
        self._tick_callbacks.append(callback)

    def on_end(self, callback: Callable[["Simulation"], None]):
        self._end_callbacks.append(callback)

    # --- Stepping ---

    def tick(self, iterations: int = 1):
        """Advance the simulation without firing callbacks."""
        velocity_keep = 1 - self.velocity_decay
        for _ in range(iterations):
            self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay
            for force in self._forces.values():
                force.apply(self.alpha)

            for node in self._nodes:
                if node.fx is None:
                    node.vx *= velocity_keep
                    node.x += node.vx
                else:
                    node.x = node.fx
                    node.vx = 0.0
                if node.fy is None:
                    node.vy *= velocity_keep
                    node.y += node.vy
                else:
                    node.y = node.fy
                    node.vy = 0.0
            self.ticks += 1

    def step(self) -> bool:
        """One scheduled tick: advance, notify, and stop once cool.

        Returns False without ticking when the simulation is stopped.
        """
        if not self.running:
            return False
        self.tick()
        for callback in self._tick_callbacks:
            callback(self)
        if self.alpha < self.alpha_min:
            self.running = False
            logger.debug(f"Simulation at rest after {self.ticks} ticks")
            for callback in self._end_callbacks:
                callback(self)
        return True

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Step until rest (or ``max_ticks``); returns the ticks taken."""
        taken = 0
        while self.running and (max_ticks is None or taken < max_ticks):
            self.step()
            taken += 1
        return taken

    def restart(self):
        self.running = True

    def stop(self):
        self.running = False
