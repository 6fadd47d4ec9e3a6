"""Tests for data preparation and processing order."""

import numpy as np

from somsd.data import prepare_data, randomize_graph_order, randomize_node_order
from somsd.depth import set_node_depth
from tests.helpers import build_graph


def _graphs():
    return [
        build_graph([0.1 * i for i in range(8)], [[i + 1] for i in range(7)] + [[]], fan_out=1, name=f"g{n}")
        for n in range(5)
    ]


def test_random_node_order_is_a_seeded_permutation():
    first, second = _graphs(), _graphs()

    randomize_node_order(first, np.random.default_rng(4))
    randomize_node_order(second, np.random.default_rng(4))

    for a, b in zip(first, second):
        assert sorted(a.order) == list(range(a.numnodes))
        assert a.order == b.order


def test_random_graph_order_is_a_seeded_permutation():
    graphs = _graphs()

    shuffled = randomize_graph_order(graphs, np.random.default_rng(4))
    again = randomize_graph_order(graphs, np.random.default_rng(4))

    assert sorted(g.name for g in shuffled) == [g.name for g in graphs]
    assert [g.name for g in shuffled] == [g.name for g in again]
    assert [g.name for g in graphs] == [f"g{n}" for n in range(5)]


def test_prepare_data_orders_nodes_by_depth():
    graphs = _graphs()
    set_node_depth(graphs)

    prepare_data(graphs, (1.0, 0.5, 0.0, 0.0))

    for graph in graphs:
        depths = [node.depth for node in graph.ordered_nodes()]
        assert depths == sorted(depths)
        assert graph.order[0] == graph.numnodes - 1


def test_prepare_data_with_random_node_order():
    graphs = _graphs()

    prepare_data(graphs, (1.0, 0.5, 0.0, 0.0), node_order="random", rng=np.random.default_rng(1))

    for graph in graphs:
        assert sorted(graph.order) == list(range(graph.numnodes))
        assert all(node.mu[0] == 1.0 for node in graph.nodes)
