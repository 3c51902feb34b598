"""Tests for forces and the link distance policy."""

import math
import random

import pytest

from edge_graph.config import get_preset
from edge_graph.forces import (
    CenterForce,
    CollideForce,
    LinkDistancePolicy,
    LinkForce,
    ManyBodyForce,
    RelationshipCohesionForce,
    TypeLevelClusterForce,
    build_quadtree,
)
from edge_graph.models import GraphEdge, GraphNode


def node(node_id, x, y, node_type="T", level=0):
    return GraphNode(id=node_id, x=x, y=y, properties={"type": node_type}, level=level)


def place(graph, positions):
    for node_id, (x, y) in positions.items():
        n = graph.get_node(node_id)
        n.x, n.y = float(x), float(y)


def scattered(count, extent, seed):
    rng = random.Random(seed)
    return [node(i, rng.uniform(0, extent), rng.uniform(0, extent)) for i in range(count)]


class TestLinkDistancePolicy:
    def test_same_type_same_level(self):
        policy = LinkDistancePolicy(base=500)
        edge = GraphEdge(source=node(1, 0, 0), target=node(2, 0, 0), relationship="R")
        assert policy(edge) == 500

    def test_type_and_level_increments(self):
        policy = LinkDistancePolicy(base=500, type_increment=150, level_increment=100)
        edge = GraphEdge(source=node(1, 0, 0, "A", 0), target=node(2, 0, 0, "B", 2))
        assert policy(edge) == 500 + 150 + 200

    def test_primary_and_secondary_factors(self):
        policy = LinkDistancePolicy(base=500, primary=["OWNS"], secondary=["MENTIONS"])
        a, b = node(1, 0, 0), node(2, 0, 0)
        assert policy(GraphEdge(source=a, target=b, relationship="OWNS")) == pytest.approx(350)
        assert policy(GraphEdge(source=a, target=b, relationship="MENTIONS")) == pytest.approx(650)
        assert policy(GraphEdge(source=a, target=b, relationship="OTHER")) == 500

    def test_from_config(self):
        policy = LinkDistancePolicy.from_config(get_preset("compact"))
        assert policy.base == 350


class TestLinkForce:
    def test_spring_pulls_together(self):
        a, b = node(1, 0, 0), node(2, 100, 0)
        force = LinkForce([GraphEdge(source=a, target=b)], distance=50)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert a.vx == pytest.approx(25)
        assert b.vx == pytest.approx(-25)

    def test_spring_pushes_apart(self):
        a, b = node(1, 0, 0), node(2, 10, 0)
        force = LinkForce([GraphEdge(source=a, target=b)], distance=50)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert a.vx < 0 < b.vx

    def test_distance_callable(self):
        a, b = node(1, 0, 0, "A"), node(2, 100, 0, "B")
        edge = GraphEdge(source=a, target=b)
        force = LinkForce([edge], distance=LinkDistancePolicy(base=100, type_increment=50))
        force.initialize([a, b], random.Random(0))
        assert force._distances == [150]

    def test_links_to_absent_nodes_are_skipped(self):
        a, b, c = node(1, 0, 0), node(2, 10, 0), node(3, 20, 0)
        force = LinkForce([GraphEdge(source=a, target=c)], distance=50)
        force.initialize([a, b], random.Random(0))
        assert force.links == []

        force.initialize([a, b, c], random.Random(0))
        assert len(force.links) == 1

    def test_set_links(self):
        a, b = node(1, 0, 0), node(2, 100, 0)
        force = LinkForce([], distance=50)
        force.initialize([a, b], random.Random(0))
        force.set_links([GraphEdge(source=a, target=b)])
        assert len(force.links) == 1


class TestManyBodyForce:
    def test_negative_strength_repels(self):
        a, b = node(1, 0, 0), node(2, 100, 0)
        force = ManyBodyForce(strength=-1000)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert a.vx == pytest.approx(-10)
        assert b.vx == pytest.approx(10)

    def test_large_distance_max_matches_unbounded(self):
        def velocities(distance_max):
            rng = random.Random(4)
            nodes = [node(i, rng.uniform(0, 400), rng.uniform(0, 400)) for i in range(15)]
            force = ManyBodyForce(strength=-50, distance_max=distance_max)
            force.initialize(nodes, random.Random(0))
            force.apply(0.5)
            return [v for n in nodes for v in (n.vx, n.vy)]

        assert velocities(1e9) == pytest.approx(velocities(math.inf))

    def test_beyond_distance_max_no_effect(self):
        a, b = node(1, 0, 0), node(2, 100, 0)
        force = ManyBodyForce(strength=-1000, distance_max=50)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert (a.vx, b.vx) == (0, 0)

    def test_zero_theta_sums_every_pair(self):
        nodes = scattered(40, 500, seed=7)
        expected = []
        for n in nodes:
            vx = vy = 0.0
            for other in nodes:
                if other is n:
                    continue
                x, y = other.x - n.x, other.y - n.y
                l = x * x + y * y
                if l < 1:
                    l = math.sqrt(l)
                vx += x * -30 * 0.5 / l
                vy += y * -30 * 0.5 / l
            expected.extend((vx, vy))

        force = ManyBodyForce(strength=-30, theta=0)
        force.initialize(nodes, random.Random(0))
        force.apply(0.5)
        assert [v for n in nodes for v in (n.vx, n.vy)] == pytest.approx(expected)
        assert force.interactions == 40 * 39

    def test_approximation_stays_close_to_exact(self):
        def velocities(theta):
            nodes = scattered(300, 1000, seed=11)
            force = ManyBodyForce(strength=-100, theta=theta)
            force.initialize(nodes, random.Random(0))
            force.apply(1.0)
            return [(n.vx, n.vy) for n in nodes]

        exact = velocities(0)
        approx = velocities(0.9)
        error = sum(math.hypot(ax - ex, ay - ey) for (ax, ay), (ex, ey) in zip(approx, exact))
        magnitude = sum(math.hypot(ex, ey) for ex, ey in exact)
        assert error / magnitude < 0.25

    def test_work_grows_slower_than_all_pairs(self):
        n = 500
        nodes = scattered(n, 2000, seed=3)
        force = ManyBodyForce(strength=-100)
        force.initialize(nodes, random.Random(0))
        force.apply(1.0)
        assert 0 < force.interactions < n * (n - 1) / 2

    def test_coincident_nodes_are_pushed_apart(self):
        a, b, c = node(1, 5, 5), node(2, 5, 5), node(3, 5, 5)
        force = ManyBodyForce(strength=-10)
        force.initialize([a, b, c], random.Random(0))
        force.apply(1.0)
        for n in (a, b, c):
            assert (n.vx, n.vy) != (0, 0)
            assert math.isfinite(n.vx) and math.isfinite(n.vy)


class TestQuadtree:
    def test_counts_and_centroid(self):
        nodes = [node(1, 0, 0), node(2, 10, 0), node(3, 0, 10), node(4, 10, 10)]
        root = build_quadtree(nodes)
        assert root.count == 4
        assert (root.sx / root.count, root.sy / root.count) == (5, 5)
        assert sum(child.count for child in root.children) == 4

    def test_coincident_nodes_share_a_leaf(self):
        nodes = [node(1, 3, 3), node(2, 3, 3)]
        root = build_quadtree(nodes)
        assert root.children is None
        assert root.points == nodes

    def test_empty(self):
        assert build_quadtree([]) is None


class TestCollideForce:
    def test_overlap_is_resolved_symmetrically(self):
        a, b = node(1, 0, 0), node(2, 10, 0)
        force = CollideForce(radius=10, strength=1)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert a.vx == pytest.approx(-5)
        assert b.vx == pytest.approx(5)

    def test_separated_nodes_untouched(self):
        a, b = node(1, 0, 0), node(2, 50, 0)
        force = CollideForce(radius=10)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert (a.vx, a.vy, b.vx, b.vy) == (0, 0, 0, 0)


class TestCenterForce:
    def test_translates_mean_onto_center(self):
        a, b = node(1, 10, 0), node(2, 30, 0)
        force = CenterForce(0, 0)
        force.initialize([a, b], random.Random(0))
        force.apply(1.0)
        assert (a.x, b.x) == (-10, 10)


class TestTypeLevelClusterForce:
    def test_pulls_toward_bucket_center(self):
        n = node(1, 0, 0, "A", 0)
        force = TypeLevelClusterForce(1200, 800, strength_x=0.05, strength_y=0.15)
        force.initialize([n], random.Random(0))
        dvx, dvy = force.velocity_delta(n, 1.0)
        assert dvx == pytest.approx(600 * 0.05)
        assert dvy == pytest.approx(400 * 0.15)

    def test_pinned_node_unaffected(self):
        n = node(1, 0, 0)
        n.fx, n.fy = 0.0, 0.0
        force = TypeLevelClusterForce(1200, 800)
        force.initialize([n], random.Random(0))
        assert force.velocity_delta(n, 1.0) == (0.0, 0.0)

    def test_resize_moves_centers(self):
        n = node(1, 0, 0, "A", 0)
        force = TypeLevelClusterForce(1200, 800)
        force.initialize([n], random.Random(0))
        force.resize(600, 400)
        assert force.centers[(0, "A")] == (300, 200)


class TestRelationshipCohesionForce:
    @pytest.fixture
    def graph(self, build_graph):
        graph = build_graph([1, 2, 3, 4], [(1, 2, "KNOWS"), (2, 3, "KNOWS"), (3, 4, "OWNS")])
        place(graph, {1: (0, 0), 2: (30, 0), 3: (60, 0), 4: (500, 0)})
        return graph

    def test_primary_relationship(self, graph):
        force = RelationshipCohesionForce(graph.edges)
        force.initialize(graph.nodes, random.Random(0))
        assert force.primary_relationship(graph.get_node(2)) == "KNOWS"
        assert force.primary_relationship(graph.get_node(4)) == "OWNS"

    def test_clusters_drop_singletons(self, graph):
        force = RelationshipCohesionForce(graph.edges)
        force.initialize(graph.nodes, random.Random(0))
        assert [[m.id for m in c] for c in force.clusters] == [[1, 2, 3]]

    def test_pull_toward_centroid(self, graph):
        force = RelationshipCohesionForce(graph.edges, strength=0.03)
        force.initialize(graph.nodes, random.Random(0))
        force.apply(1.0)
        assert graph.get_node(1).vx == pytest.approx(30 * 0.03)
        assert graph.get_node(3).vx == pytest.approx(-30 * 0.03)
        assert graph.get_node(4).vx == 0
