"""
Pointer interaction for Edge Graph.

``InteractionController`` turns screen-space pointer and wheel events into
engine calls.  Its drag state machine::

    IDLE ──down on node──▶ DRAGGING ──up──▶ IDLE
      │                                      ▲
      └──down on empty canvas──▶ PANNING ──up┘

- Only the primary button starts a gesture, and ctrl-clicks are ignored.
- Pressing a node pins it and warms the simulation; every move re-pins it
  under the pointer and pushes nearby nodes away.
- Pressing empty canvas pans the view instead (a press on a node never
  pans).
- A press released within ``click_threshold`` pixels of where it started is
  a click: the node's previous pin is restored and its selection toggled.
- The wheel zooms around the pointer, except while dragging.

Every handler finishes its work, including the redraw callback, before it
returns, so events never interleave.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Callable, Optional

from .engine import LayoutEngine
from .models import NodeId
from .viewport import Rect, pan, to_simulation, wheel_factor, zoom_at


class DragState(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PANNING = "panning"


@dataclass
class SelectionState:
    """The selected node (at most one) and where its info box sits."""
    node_id: Optional[NodeId] = None
    visible: bool = False
    rect: Optional[Rect] = None


class InteractionController:
    """Routes pointer events to the layout engine."""

    def __init__(self, engine: LayoutEngine, on_redraw: Optional[Callable[[], None]] = None):
        self.engine = engine
        self.on_redraw = on_redraw
        self.state = DragState.IDLE
        self.selection = SelectionState()
        self.hover_id: Optional[NodeId] = None

        self._drag_id: Optional[NodeId] = None
        self._press: Optional[tuple[float, float]] = None
        self._last: Optional[tuple[float, float]] = None
        self._moved = 0.0
        self._previous_pin: tuple[Optional[float], Optional[float]] = (None, None)

    @property
    def dragging(self) -> bool:
        return self.state is DragState.DRAGGING

    @property
    def cursor(self) -> str:
        if self.state is DragState.DRAGGING:
            return "grabbing"
        if self.hover_id is not None:
            return "pointer"
        return "default"

    def _redraw(self):
        if self.on_redraw is not None:
            self.on_redraw()

    def _hit(self, sx: float, sy: float):
        x, y = to_simulation(self.engine.transform, (sx, sy))
        return self.engine.node_at(x, y)

    # --- Pointer events ---

    def pointer_down(self, sx: float, sy: float, button: int = 0, ctrl: bool = False) -> Optional[NodeId]:
        """Start a drag (on a node) or a pan (on empty canvas).

        Returns the id of the node being dragged, if any.
        """
        if button != 0 or ctrl or self.state is not DragState.IDLE:
            return None

        self._press = (sx, sy)
        self._last = (sx, sy)
        self._moved = 0.0

        node = self._hit(sx, sy)
        if node is None:
            self.state = DragState.PANNING
            return None

        self._drag_id = node.id
        self._previous_pin = (node.fx, node.fy)
        self.engine.begin_drag(node.id)
        self.state = DragState.DRAGGING
        self._redraw()
        return node.id

    def pointer_move(self, sx: float, sy: float):
        """Continue the current gesture, or update hover feedback."""
        if self.state is DragState.IDLE:
            node = self._hit(sx, sy)
            hover = node.id if node is not None else None
            if hover != self.hover_id:
                self.hover_id = hover
                self._redraw()
            return

        self._moved = max(self._moved, math.hypot(sx - self._press[0], sy - self._press[1]))

        if self.state is DragState.PANNING:
            dx = sx - self._last[0]
            dy = sy - self._last[1]
            self.engine.set_transform(pan(self.engine.transform, dx, dy))
        else:
            x, y = to_simulation(self.engine.transform, (sx, sy))
            self.engine.drag_to(self._drag_id, x, y)

        self._last = (sx, sy)
        self._redraw()

    def pointer_up(self, sx: float, sy: float) -> Optional[str]:
        """Finish the gesture.

        Returns ``"click"`` when a node press turned out to be a click,
        ``"drag"`` or ``"pan"`` for completed gestures, and None when idle.
        """
        if self.state is DragState.IDLE:
            return None

        if self._press is not None:
            self._moved = max(self._moved, math.hypot(sx - self._press[0], sy - self._press[1]))
        is_click = self._moved < self.engine.config.click_threshold

        if self.state is DragState.PANNING:
            self._reset()
            return "pan"

        node_id = self._drag_id
        self.engine.end_drag(node_id)
        if is_click:
            fx, fy = self._previous_pin
            if fx is not None and fy is not None:
                self.engine.pin(node_id, fx, fy)
            else:
                self.engine.release(node_id)
            self.toggle(node_id)
        self._reset()
        self._redraw()
        return "click" if is_click else "drag"

    def _reset(self):
        self.state = DragState.IDLE
        self._drag_id = None
        self._press = None
        self._last = None
        self._moved = 0.0
        self._previous_pin = (None, None)

    def wheel(self, sx: float, sy: float, delta_y: float, delta_mode: int = 0) -> bool:
        """Zoom around the pointer; ignored while dragging."""
        if self.dragging:
            return False
        cfg = self.engine.config
        self.engine.set_transform(zoom_at(
            self.engine.transform, (sx, sy), wheel_factor(delta_y, delta_mode),
            cfg.min_zoom, cfg.max_zoom,
        ))
        self._redraw()
        return True

    # --- Selection ---

    def select(self, node_id: NodeId):
        self.selection = SelectionState(node_id=node_id, visible=True)

    def clear_selection(self):
        self.selection = SelectionState()

    def toggle(self, node_id: NodeId):
        if self.selection.visible and self.selection.node_id == node_id:
            self.clear_selection()
        else:
            self.select(node_id)
