"""Tests for state encoding of neighbour positions."""

import numpy as np

from somsd.state import (
    state_updater,
    update_children_and_parent_location,
    update_children_location,
    update_children_location_vq,
    update_states,
)


def test_children_positions_are_copied(chain):
    root, leaf = chain.nodes
    leaf.x, leaf.y = 2, 1

    update_children_location(chain, root)

    assert list(root.points[1:3]) == [2.0, 1.0]


def test_unset_child_position_stays_unset(chain):
    root = chain.nodes[0]

    update_children_location(chain, root)

    assert list(root.points[1:3]) == [-1.0, -1.0]


def test_empty_slots_are_left_alone(tree):
    leaf = tree.nodes[2]

    update_children_location(tree, leaf)

    assert np.all(leaf.points[1:] == -1.0)


def test_vq_stores_winner_id(chain):
    root, leaf = chain.nodes
    leaf.winner = 4

    update_children_location_vq(chain, root)

    assert root.points[1] == 4.0
    assert root.points[2] == -1.0


def test_contextual_stores_parent_positions(dag):
    for i, node in enumerate(dag.nodes):
        node.x, node.y = i, 10 + i
    bottom = dag.nodes[3]

    update_children_and_parent_location(dag, bottom)

    assert dag.parent_offset == 5
    assert list(bottom.points[5:9]) == [1.0, 11.0, 2.0, 12.0]


def test_state_updater_selection():
    assert state_updater() is update_children_location
    assert state_updater(vq=True) is update_children_location_vq
    assert state_updater(contextual=True) is update_children_and_parent_location


def test_update_states_covers_every_node(tree):
    for i, node in enumerate(tree.nodes):
        node.x, node.y = i, i

    update_states(tree)

    assert list(tree.nodes[0].points[1:5]) == [1.0, 1.0, 2.0, 2.0]
    assert list(tree.nodes[1].points[1:5]) == [3.0, 3.0, 4.0, 4.0]
