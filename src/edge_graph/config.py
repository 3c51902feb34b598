"""
Configuration presets for Edge Graph.

Every tunable of the layout engine, the interaction controller and the
renderer lives on ``GraphConfig``.  Three named presets are provided:

    default   60px nodes, 500px springs; a dragged node stays pinned
    compact   40px nodes, 350px springs, weaker repulsion; a dragged node
               is released back to the simulation
    spacious  60px nodes, 650px springs, stronger repulsion

Presets can be customised from YAML::

    preset: compact
    node_radius: 45
    primary_relationships: [CAUSES]
"""

from __future__ import annotations

import math
from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class GraphConfig(BaseModel):
    """All tunables, grouped by the component that reads them."""

    # Geometry and text
    node_radius: float = 60.0
    arrow_length: float = 15.0
    arrow_width: float = math.pi / 12
    line_width: float = 1.5
    font_size: int = 14
    line_height: float = 16.0
    label_width_factor: float = 1.5
    bidirectional_offset: float = 15.0
    text_offset: float = 6.0

    # Colors
    background_color: str = "#1a1a1a"
    link_color: str = "#ffffff"
    text_color: str = "#ffffff"
    fallback_color: str = "#999999"
    info_fill: str = "#2a2a2a"
    info_border: str = "#555555"
    info_text: str = "#e0e0e0"

    # View fitting and zoom
    min_zoom: float = 0.1
    max_zoom: float = 4.0
    baseline_scale: float = 0.8
    fit_factor: float = 0.9
    bounds_multiplier: float = 1.0
    edge_padding: float = 40.0
    refit_delay: float = 0.1

    # Simulation
    alpha_min: float = 0.001
    alpha_decay: float = 0.0228
    velocity_decay: float = 0.3
    charge_strength: float = -1000.0
    charge_distance_max: float = 500.0
    charge_theta: float = 0.9
    collide_radius_factor: float = 1.5
    collide_strength: float = 0.8
    collide_iterations: int = 3

    # Link distance policy
    link_distance: float = 500.0
    type_distance_increment: float = 150.0
    level_distance_increment: float = 100.0
    primary_relationships: list[str] = Field(default_factory=list)
    secondary_relationships: list[str] = Field(default_factory=list)
    primary_distance_factor: float = 0.7
    secondary_distance_factor: float = 1.3

    # Custom forces
    cluster_strength_x: float = 0.05
    cluster_strength_y: float = 0.15
    cohesion_strength: float = 0.03

    # Initial layout organizer
    grid_threshold: int = 7
    hub_threshold: int = 5
    overlap_passes: int = 5
    min_separation_factor: float = 2.2
    node_spacing_factor: float = 2.5

    # Interaction
    drag_collide_radius_factor: float = 1.6
    drag_collide_strength: float = 1.0
    drag_alpha_target: float = 0.1
    release_alpha: float = 0.1
    avoidance_radius_factor: float = 3.0
    avoidance_strength: float = 0.3
    click_threshold: float = 5.0
    release_on_drag_end: bool = False


PRESETS: dict[str, GraphConfig] = {
    "default": GraphConfig(),
    "compact": GraphConfig(
        node_radius=40.0,
        link_distance=350.0,
        type_distance_increment=100.0,
        level_distance_increment=60.0,
        charge_strength=-600.0,
        charge_distance_max=350.0,
        collide_radius_factor=1.05,
        collide_strength=0.7,
        collide_iterations=2,
        release_on_drag_end=True,
    ),
    "spacious": GraphConfig(
        link_distance=650.0,
        charge_strength=-1400.0,
        charge_distance_max=700.0,
        baseline_scale=0.7,
    ),
}


def get_preset(name: str) -> GraphConfig:
    """Get a copy of a named preset.

    Raises:
        ValueError: If the preset name is not recognized
    """
    if name not in PRESETS:
        valid = ", ".join(PRESETS.keys())
        raise ValueError(f"Unknown preset '{name}'. Valid presets: {valid}")
    return PRESETS[name].model_copy(deep=True)


def config_from_dict(data: dict) -> GraphConfig:
    """Build a config from a preset name plus field overrides."""
    data = dict(data or {})
    base = get_preset(data.pop("preset", "default"))
    merged = base.model_dump()
    merged.update(data)
    return GraphConfig.model_validate(merged)


def load_config(path: str) -> GraphConfig:
    """Load a YAML config file (optional ``preset`` key plus overrides)."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return config_from_dict(data)


def config_to_yaml(config: GraphConfig) -> str:
    """Serialize a config back to YAML."""
    return yaml.dump(config.model_dump(), default_flow_style=False, sort_keys=False)
