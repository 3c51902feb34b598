"""Tests for the layout engine."""

import math

import pytest

from edge_graph.config import GraphConfig, get_preset
from edge_graph.engine import LayoutEngine


@pytest.fixture
def engine(build_graph):
    graph = build_graph([1, 2, 3, 4, 5], [(1, 2), (1, 3), (3, 4), (4, 3, "BACK"), (2, 5)])
    return LayoutEngine(graph, seed=7).initialize()


@pytest.fixture
def pair_engine(build_graph):
    """Two isolated nodes placed by hand."""
    engine = LayoutEngine(build_graph(["a", "b"]), seed=1).initialize()
    a = engine.graph.get_node("a")
    b = engine.graph.get_node("b")
    a.x, a.y = 0.0, 0.0
    b.x, b.y = 50.0, 0.0
    return engine


class TestInitialize:
    def test_levels_positions_and_forces(self, engine):
        assert engine.max_level == 2
        assert all(n.is_placed for n in engine.graph.nodes)
        assert engine.simulation.force_names() == [
            "link", "charge", "collide", "center", "cluster", "cohesion",
        ]

    def test_charge_uses_configured_theta(self, build_graph):
        config = GraphConfig(charge_theta=0.5)
        engine = LayoutEngine(build_graph([1, 2]), config, seed=1).initialize()
        charge = engine.simulation.force("charge")
        assert charge.theta == 0.5
        assert charge.distance_max == config.charge_distance_max

    def test_view_is_fitted(self, engine):
        cfg = engine.config
        assert cfg.min_zoom <= engine.transform.k <= cfg.max_zoom

    def test_run_settles(self, engine):
        ticks = engine.run(max_ticks=1000)
        assert not engine.is_running
        assert ticks < 1000
        assert all(math.isfinite(n.x) and math.isfinite(n.y) for n in engine.graph.nodes)

    def test_stats(self, engine):
        stats = engine.stats()
        assert stats["nodes"] == 5
        assert stats["edges"] == 5
        assert stats["bidirectional_pairs"] == 1
        assert stats["max_level"] == 2


class TestPins:
    def test_pin_and_release(self, engine):
        node = engine.pin(1, 10.0, 20.0)
        assert (node.fx, node.fy) == (10.0, 20.0)
        engine.step()
        assert (node.x, node.y) == (10.0, 20.0)
        engine.release(1)
        assert not node.is_pinned

    def test_unknown_node(self, engine):
        with pytest.raises(KeyError):
            engine.pin(99, 0, 0)
        with pytest.raises(KeyError):
            engine.begin_drag(99)

    def test_node_at(self, engine):
        node = engine.graph.get_node(3)
        assert engine.node_at(node.x + 10, node.y - 10) is node
        assert engine.node_at(node.x + 1e6, node.y) is None


class TestDrag:
    def test_release_leaves_node_at_drop_point(self, engine):
        engine.run(max_ticks=50)
        engine.begin_drag(2)
        engine.drag_to(2, 123.0, -45.0)
        engine.end_drag(2)
        engine.step()

        node = engine.graph.get_node(2)
        assert node.x == pytest.approx(123.0, abs=1e-6)
        assert node.y == pytest.approx(-45.0, abs=1e-6)

    def test_drag_warms_and_restores_collision(self, engine):
        cfg = engine.config
        collide = engine.simulation.force("collide")
        engine.simulation.stop()

        engine.begin_drag(1)
        assert collide.radius == pytest.approx(cfg.node_radius * cfg.drag_collide_radius_factor)
        assert collide.strength == cfg.drag_collide_strength
        assert engine.simulation.alpha_target == cfg.drag_alpha_target
        assert engine.is_running

        engine.end_drag(1)
        assert collide.radius == pytest.approx(cfg.node_radius * cfg.collide_radius_factor)
        assert collide.strength == cfg.collide_strength
        assert engine.simulation.alpha_target == 0
        assert engine.simulation.alpha == cfg.release_alpha

    def test_default_keeps_dragged_node_pinned(self, engine):
        engine.begin_drag(1)
        engine.drag_to(1, 5.0, 5.0)
        engine.end_drag(1)
        assert engine.graph.get_node(1).is_pinned

    def test_compact_releases_dragged_node(self, build_graph):
        engine = LayoutEngine(build_graph([1, 2], [(1, 2)]), get_preset("compact")).initialize()
        engine.begin_drag(1)
        engine.drag_to(1, 5.0, 5.0)
        engine.end_drag(1)
        assert not engine.graph.get_node(1).is_pinned


class TestPushNeighbors:
    def test_free_neighbor_is_pushed(self, pair_engine):
        cfg = pair_engine.config
        b = pair_engine.graph.get_node("b")
        pushed = pair_engine.push_neighbors("a")

        push = (cfg.node_radius * cfg.avoidance_radius_factor - 50) * cfg.avoidance_strength
        assert pushed == 1
        assert b.x == pytest.approx(50 + push)
        assert b.vx == pytest.approx(push)
        assert b.y == pytest.approx(0)

    def test_pinned_neighbor_moves_half(self, pair_engine):
        cfg = pair_engine.config
        b = pair_engine.pin("b", 50.0, 0.0)
        pair_engine.push_neighbors("a")

        push = (cfg.node_radius * cfg.avoidance_radius_factor - 50) * cfg.avoidance_strength
        assert b.fx == pytest.approx(50 + push / 2)
        assert b.x == b.fx

    def test_far_nodes_untouched(self, pair_engine):
        b = pair_engine.graph.get_node("b")
        b.x = 10_000.0
        assert pair_engine.push_neighbors("a") == 0
        assert b.x == 10_000.0

    def test_coincident_neighbor_gets_pushed(self, pair_engine):
        b = pair_engine.graph.get_node("b")
        b.x = 0.0
        pair_engine.push_neighbors("a")
        assert math.hypot(b.x, b.y) > 0


class TestView:
    def test_resize_moves_centers(self, engine):
        engine.resize(600, 400)
        assert (engine.width, engine.height) == (600, 400)
        center = engine.simulation.force("center")
        assert (center.x, center.y) == (300, 200)
        assert engine.simulation.force("cluster").width == 600

    def test_set_transform(self, engine):
        from edge_graph.viewport import ViewTransform
        engine.set_transform(ViewTransform(1, 2, 3))
        assert engine.transform.k == 3


class TestCollapse:
    def test_collapse_removes_nodes_from_simulation(self, engine):
        hidden = engine.collapse(1)
        assert hidden == [2, 3, 4, 5]
        assert [n.id for n in engine.simulation.nodes] == [1]
        assert engine.simulation.force("link").links == []
        assert engine.simulation.alpha == 1.0

    def test_expand_restores(self, engine):
        engine.collapse(3)
        assert len(engine.simulation.nodes) == 4
        revealed = engine.expand(3)
        assert revealed == [4]
        assert len(engine.simulation.nodes) == 5
        assert len(engine.simulation.force("link").links) == 5
        engine.step()

    def test_simulation_shares_node_objects(self, engine):
        engine.collapse(3)
        engine.expand(3)
        assert engine.simulation.nodes[0] is engine.graph.nodes[0]

    def test_config_is_respected(self, build_graph):
        config = GraphConfig(node_radius=10)
        engine = LayoutEngine(build_graph([1]), config).initialize()
        assert engine.node_radius == 10
        assert engine.simulation.force("collide").radius == pytest.approx(10 * config.collide_radius_factor)
