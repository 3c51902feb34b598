"""Tests for the simulation loop."""

import math

import pytest

from edge_graph.forces import Force
from edge_graph.models import GraphNode
from edge_graph.simulation import Simulation


class ConstantPush(Force):
    def velocity_delta(self, node, alpha):
        return (1.0, 0.0)


class TestInitialization:
    def test_unplaced_nodes_get_distinct_positions(self):
        nodes = [GraphNode(id=i) for i in range(5)]
        Simulation(nodes)
        assert all(n.is_placed for n in nodes)
        assert len({(round(n.x, 6), round(n.y, 6)) for n in nodes}) == 5

    def test_placed_nodes_keep_position(self):
        n = GraphNode(id=1, x=3.0, y=4.0)
        Simulation([n])
        assert (n.x, n.y) == (3.0, 4.0)

    def test_pinned_node_starts_at_pin(self):
        n = GraphNode(id=1, x=0.0, y=0.0, fx=5.0, fy=6.0)
        Simulation([n])
        assert (n.x, n.y) == (5.0, 6.0)

    def test_set_force_initializes_with_nodes(self):
        nodes = [GraphNode(id=1, x=0.0, y=0.0)]
        sim = Simulation(nodes)
        force = sim.set_force("push", ConstantPush())
        assert force.nodes is nodes
        assert sim.force_names() == ["push"]
        sim.remove_force("push")
        assert sim.force("push") is None


class TestTick:
    def test_alpha_moves_toward_target(self):
        sim = Simulation([], alpha=1.0, alpha_decay=0.0228)
        sim.tick()
        assert sim.alpha == pytest.approx(1 - 0.0228)

    def test_velocity_decay(self):
        n = GraphNode(id=1, x=0.0, y=0.0, vx=10.0)
        sim = Simulation([n], velocity_decay=0.4)
        sim.tick()
        assert n.vx == pytest.approx(6.0)
        assert n.x == pytest.approx(6.0)

    def test_pinned_node_does_not_move(self):
        n = GraphNode(id=1, x=0.0, y=0.0, fx=5.0, fy=6.0, vx=3.0)
        sim = Simulation([n])
        sim.set_force("push", ConstantPush())
        sim.tick(3)
        assert (n.x, n.y) == (5.0, 6.0)
        assert (n.vx, n.vy) == (0.0, 0.0)

    def test_forces_apply_each_tick(self):
        n = GraphNode(id=1, x=0.0, y=0.0)
        sim = Simulation([n], velocity_decay=0.0)
        sim.set_force("push", ConstantPush())
        sim.tick(2)
        assert n.x == pytest.approx(3.0)


class TestScheduling:
    def test_run_stops_below_alpha_min(self):
        sim = Simulation([GraphNode(id=1)], alpha_min=0.001, alpha_decay=0.0228)
        taken = sim.run()
        assert not sim.running
        assert sim.alpha < sim.alpha_min
        assert taken == sim.ticks
        expected = math.ceil(math.log(0.001) / math.log(1 - 0.0228))
        assert abs(taken - expected) <= 1

    def test_positive_target_keeps_running(self):
        sim = Simulation([GraphNode(id=1)], alpha_target=0.1)
        assert sim.run(max_ticks=500) == 500
        assert sim.running
        assert sim.alpha == pytest.approx(0.1, abs=1e-3)

    def test_callbacks(self):
        sim = Simulation([GraphNode(id=1)], alpha_decay=0.5, alpha_min=0.1)
        ticks = []
        ends = []
        sim.on_tick(lambda s: ticks.append(s.alpha))
        sim.on_end(lambda s: ends.append(s.ticks))
        sim.run()
        assert len(ticks) == sim.ticks
        assert ends == [sim.ticks]

    def test_step_when_stopped(self):
        sim = Simulation([GraphNode(id=1)])
        sim.stop()
        assert sim.step() is False
        assert sim.ticks == 0
        sim.restart()
        assert sim.step() is True
