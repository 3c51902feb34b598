"""
Data models for Edge Graph.

Two families of models live here:

Input document
    ``GraphDocument`` mirrors the JSON/YAML shape accepted by the loader::

        nodes:         [{id, label, properties: {type, ...}}]
        edges:         [{source_node_id, target_node_id, relationship_name, properties}]
        colors:        {type: "#rrggbb"}
        configuration: {logo: {url, position, max_size, padding}}   (optional)

Live graph
    ``GraphNode`` and ``GraphEdge`` are the mutable records the simulation,
    the renderer and the interaction controller all share.  Edges hold the
    very same ``GraphNode`` objects that sit in ``Graph.nodes``.  There are no
    copies, so a position written by the simulation is immediately visible to
    the renderer.

Node ids may be integers or strings.  ``id_order_key`` gives them a total
order (numbers before strings) so mixed-id documents never raise when ids are
compared.
"""

from __future__ import annotations
from typing import Any, Optional, Union
from pydantic import BaseModel, Field


NodeId = Union[int, str]

FALLBACK_COLOR = "#999999"


def id_order_key(node_id: NodeId) -> tuple[int, Any]:
    """Sort key for node ids: numbers first (numerically), then strings."""
    if isinstance(node_id, (int, float)) and not isinstance(node_id, bool):
        return (0, node_id)
    return (1, str(node_id))


# ---------------------------------------------------------------------------
# Input document
# ---------------------------------------------------------------------------

class NodeRecord(BaseModel):
    """A node as it appears in the input document."""
    id: NodeId
    label: Optional[str] = None
    properties: dict[str, Any] = Field(default_factory=dict)


class EdgeRecord(BaseModel):
    """An edge as it appears in the input document."""
    source_node_id: NodeId
    target_node_id: NodeId
    relationship_name: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)


class LogoConfig(BaseModel):
    """Overlay logo drawn in a corner of the canvas.

    Attributes:
        url:      Local path, ``file://`` URL or http(s) URL of the image.
        position: One of ``top-left``, ``top-right``, ``bottom-left``,
                  ``bottom-right``.
        max_size: Longest side of the logo in screen pixels.
        padding:  Distance from the canvas edges in screen pixels.
    """
    url: str
    position: str = "top-right"
    max_size: int = 100
    padding: int = 10


class DisplayConfiguration(BaseModel):
    """Optional ``configuration`` block of the input document."""
    logo: Optional[LogoConfig] = None


class GraphDocument(BaseModel):
    """The complete input document."""
    nodes: list[NodeRecord]
    edges: list[EdgeRecord]
    colors: dict[str, str] = Field(default_factory=dict)
    configuration: Optional[DisplayConfiguration] = None


# ---------------------------------------------------------------------------
# Live graph records
# ---------------------------------------------------------------------------

class GraphNode(BaseModel):
    """A node: one domain entity drawn as a colored disc.

    Position
    --------
    ``x``/``y`` are simulation-space coordinates and are either both set or
    both ``None`` (not yet placed).  ``vx``/``vy`` is the velocity the
    simulation integrates.  ``fx``/``fy`` pin the node: while set, the
    simulation snaps the node there and zeroes its velocity.

    Hierarchy
    ---------
    ``level``, ``child_count`` and ``parent_count`` are filled in by
    ``edge_graph.hierarchy.analyze_hierarchy``.
    """
    id: NodeId
    label: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    color: str = FALLBACK_COLOR
    index: int = 0
    x: Optional[float] = None
    y: Optional[float] = None
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None
    level: Optional[int] = None
    child_count: int = 0
    parent_count: int = 0
    hidden: bool = False
    collapsed: bool = False

    @property
    def type(self) -> Optional[str]:
        """The node's ``type`` property, used for coloring and grouping."""
        value = self.properties.get("type")
        return None if value is None else str(value)

    @property
    def is_placed(self) -> bool:
        return self.x is not None and self.y is not None

    @property
    def is_pinned(self) -> bool:
        return self.fx is not None or self.fy is not None


class GraphEdge(BaseModel):
    """A directed, labeled relationship between two nodes."""
    source: GraphNode
    target: GraphNode
    relationship: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    index: int = 0
    hidden: bool = False
