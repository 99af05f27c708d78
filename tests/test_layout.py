"""Tests for layout strategies."""

import math

import pytest

from canvas_core.errors import NoNodesError, UnknownStrategyError
from canvas_core.layout import (
    LayoutStrategy,
    align_nodes,
    apply_layout,
    distribute_nodes,
    stable_seed,
)

from conftest import link, sticky

STRATEGIES = [s.value for s in LayoutStrategy]


@pytest.fixture
def tree_graph():
    """root with two children, one of which has a child of its own."""
    nodes = [sticky("root"), sticky("a"), sticky("b"), sticky("a1")]
    edges = [link("root", "a"), link("root", "b"), link("a", "a1")]
    return nodes, edges


def positions(nodes):
    return {n.id: (n.x, n.y) for n in nodes}


def crossings(nodes, edges):
    """Pairs of edges between the same two layers whose ends swap sides."""
    centre = {n.id: n.center() for n in nodes}
    count = 0
    for i, first in enumerate(edges):
        for second in edges[i + 1:]:
            if {first.source, first.target} & {second.source, second.target}:
                continue
            (xs1, ys1), (xt1, yt1) = centre[first.source], centre[first.target]
            (xs2, ys2), (xt2, yt2) = centre[second.source], centre[second.target]
            if ys1 != ys2 or yt1 != yt2:
                continue
            if (xs1 - xs2) * (xt1 - xt2) < 0:
                count += 1
    return count


class TestAllStrategies:
    @pytest.mark.parametrize("strategy", STRATEGIES)
    def test_deterministic(self, strategy, tree_graph):
        """same input, same output."""
        nodes, edges = tree_graph
        first = apply_layout(strategy, nodes, edges)
        second = apply_layout(strategy, nodes, edges)
        assert positions(first) == positions(second)

    @pytest.mark.parametrize("strategy", STRATEGIES)
    def test_preserves_ids_and_order(self, strategy, tree_graph):
        nodes, edges = tree_graph
        placed = apply_layout(strategy, nodes, edges)
        assert [n.id for n in placed] == [n.id for n in nodes]
        assert [n.payload for n in placed] == [n.payload for n in nodes]

    @pytest.mark.parametrize("strategy", STRATEGIES)
    def test_finite_positions(self, strategy, tree_graph):
        nodes, edges = tree_graph
        for node in apply_layout(strategy, nodes, edges):
            assert math.isfinite(node.x) and math.isfinite(node.y)

    @pytest.mark.parametrize("strategy", STRATEGIES)
    def test_single_node(self, strategy):
        placed = apply_layout(strategy, [sticky("only", x=500, y=500)], [])
        assert len(placed) == 1

    @pytest.mark.parametrize("strategy", STRATEGIES)
    def test_empty_raises(self, strategy):
        with pytest.raises(NoNodesError):
            apply_layout(strategy, [], [])

    def test_unknown_strategy(self, tree_graph):
        nodes, edges = tree_graph
        with pytest.raises(UnknownStrategyError):
            apply_layout("spiral", nodes, edges)

    @pytest.mark.parametrize("strategy", ["tree", "hierarchical", "force"])
    def test_dangling_edges_ignored(self, strategy, tree_graph):
        nodes, edges = tree_graph
        with_ghost = edges + [link("root", "ghost")]
        assert positions(apply_layout(strategy, nodes, with_ghost)) == positions(apply_layout(strategy, nodes, edges))


class TestGrid:
    def test_four_nodes_two_by_two(self):
        nodes = [sticky(i) for i in ("n1", "n2", "n3", "n4")]
        placed = positions(apply_layout("grid", nodes, []))
        # default sticky is 200x150, margin 40
        assert placed == {
            "n1": (100, 100),
            "n2": (340, 100),
            "n3": (100, 290),
            "n4": (340, 290),
        }

    def test_sorted_by_id_not_input_order(self):
        forward = apply_layout("grid", [sticky("a"), sticky("b")], [])
        backward = apply_layout("grid", [sticky("b"), sticky("a")], [])
        assert positions(forward) == positions(backward)

    def test_no_overlap(self):
        nodes = [sticky(f"n{i}") for i in range(10)]
        placed = apply_layout("grid", nodes, [])
        boxes = [n.bounds() for n in placed]
        for i, a in enumerate(boxes):
            for b in boxes[i + 1:]:
                assert a[2] <= b[0] or b[2] <= a[0] or a[3] <= b[1] or b[3] <= a[1]


class TestCircular:
    def test_centres_equidistant(self):
        nodes = [sticky(f"n{i}") for i in range(6)]
        placed = apply_layout("circular", nodes, [])
        centres = [n.center() for n in placed]
        cx = sum(c[0] for c in centres) / len(centres)
        cy = sum(c[1] for c in centres) / len(centres)
        radii = [math.hypot(x - cx, y - cy) for x, y in centres]
        assert max(radii) - min(radii) < 1e-6
        assert min(radii) >= 150


class TestTree:
    def test_root_centred_above_children(self):
        nodes = [sticky("root"), sticky("a"), sticky("b")]
        edges = [link("root", "a"), link("root", "b")]
        placed = {n.id: n for n in apply_layout("tree", nodes, edges)}
        root, a, b = placed["root"], placed["a"], placed["b"]
        assert a.x < b.x
        assert a.y == b.y > root.y
        assert root.center()[0] == pytest.approx((a.center()[0] + b.center()[0]) / 2)

    def test_depth_increases_downwards(self, tree_graph):
        nodes, edges = tree_graph
        placed = {n.id: n for n in apply_layout("tree", nodes, edges)}
        assert placed["root"].y < placed["a"].y < placed["a1"].y

    def test_cycle_does_not_hang(self):
        nodes = [sticky("a"), sticky("b"), sticky("c")]
        edges = [link("a", "b"), link("b", "c"), link("c", "a")]
        placed = {n.id: n for n in apply_layout("tree", nodes, edges)}
        assert placed["a"].y < placed["b"].y < placed["c"].y

    def test_disconnected_components_side_by_side(self):
        nodes = [sticky("a"), sticky("b"), sticky("x"), sticky("y")]
        edges = [link("a", "b"), link("x", "y")]
        placed = {n.id: n for n in apply_layout("tree", nodes, edges)}
        assert placed["a"].y == placed["x"].y
        assert placed["a"].x < placed["x"].x


class TestHierarchical:
    def test_layers_by_depth(self, tree_graph):
        nodes, edges = tree_graph
        placed = {n.id: n for n in apply_layout("hierarchical", nodes, edges)}
        assert placed["root"].y < placed["a"].y == placed["b"].y < placed["a1"].y

    def test_no_overlap_within_layer(self):
        nodes = [sticky(i) for i in ("r", "c1", "c2", "c3")]
        edges = [link("r", c) for c in ("c1", "c2", "c3")]
        placed = {n.id: n for n in apply_layout("hierarchical", nodes, edges)}
        xs = sorted(placed[c].x for c in ("c1", "c2", "c3"))
        assert all(b - a >= 200 for a, b in zip(xs, xs[1:]))

    def test_reordering_removes_tree_crossing(self):
        # c->d is not a tree edge, so the tree order puts d left of g and
        # c->d crosses b->g; barycenter ordering swaps d and g
        nodes = [sticky(i) for i in ("a", "b", "c", "d", "e", "g")]
        edges = [link("a", "b"), link("a", "c"), link("b", "d"),
                 link("b", "g"), link("c", "e"), link("c", "d")]
        assert crossings(apply_layout("tree", nodes, edges), edges) >= 1
        assert crossings(apply_layout("hierarchical", nodes, edges), edges) == 0


class TestForce:
    def test_seed_changes_result(self, tree_graph):
        nodes, edges = tree_graph
        assert positions(apply_layout("force", nodes, edges, seed=1)) != positions(
            apply_layout("force", nodes, edges, seed=2)
        )

    def test_independent_of_input_order(self, tree_graph):
        nodes, edges = tree_graph
        assert positions(apply_layout("force", nodes, edges)) == positions(
            apply_layout("force", list(reversed(nodes)), edges)
        )

    def test_stable_seed(self):
        assert stable_seed(["b", "a"]) == stable_seed(["a", "b"])

    def test_connected_nodes_closer_than_unconnected(self):
        nodes = [sticky("a"), sticky("b"), sticky("c"), sticky("lonely")]
        edges = [link("a", "b"), link("b", "c"), link("a", "c")]
        placed = {n.id: n.center() for n in apply_layout("force", nodes, edges)}
        linked = math.dist(placed["a"], placed["b"])
        apart = min(math.dist(placed["lonely"], placed[o]) for o in ("a", "b", "c"))
        assert linked < apart * 1.5


class TestAlignDistribute:
    def test_align_left(self):
        nodes = [sticky("a", x=10, y=0), sticky("b", x=50, y=200), sticky("c", x=90)]
        aligned = align_nodes(nodes, {"a", "b"}, "left")
        assert [n.x for n in aligned] == [10, 10, 90]

    def test_align_needs_two(self):
        assert align_nodes([sticky("a")], {"a"}, "left") is None

    def test_align_unknown(self):
        assert align_nodes([sticky("a"), sticky("b")], {"a", "b"}, "diagonal") is None

    def test_distribute_horizontal(self):
        nodes = [sticky("a", x=0), sticky("b", x=10), sticky("c", x=100)]
        spread = {n.id: n.x for n in distribute_nodes(nodes, {"a", "b", "c"}, "horizontal")}
        assert spread == {"a": 0, "b": 50, "c": 100}

    def test_distribute_needs_three(self):
        assert distribute_nodes([sticky("a"), sticky("b")], {"a", "b"}) is None
