"""Fixed-point propagation of node positions through a graph.

Each round encodes every node's state from the positions committed in the
previous round, searches all winners and then commits the new positions at
once. ``depth + 1`` rounds are enough for child information to travel from
the leaves to the roots.
"""

import logging

from joblib import Parallel, delayed

from somsd.codebook import Map
from somsd.errors import ConfigurationError
from somsd.graph import Graph, Node
from somsd.state import state_updater, update_states
from somsd.winner import Winner, winner_finder

logger = logging.getLogger(__name__)


def _map_node(map: Map, graph: Graph, node: Node, update, find) -> Winner:
    update(graph, node)
    return find(map, node, graph)


def propagation_round(
    map: Map,
    graph: Graph,
    contextual: bool = True,
    ncpu: int = 1,
) -> tuple[int, float]:
    """Run one double-buffered round over ``graph``.

    Returns the number of nodes whose position changed and the summed
    quantization error of the round.
    """
    update = state_updater(map.is_vq, contextual)
    find = winner_finder(map)
    nodes = list(graph.ordered_nodes())
    if ncpu > 1:
        winners = Parallel(n_jobs=ncpu, prefer="threads")(
            delayed(_map_node)(map, graph, node, update, find) for node in nodes
        )
    else:
        winners = [_map_node(map, graph, node, update, find) for node in nodes]

    changes = 0
    qerror = 0.0
    for node, winner in zip(nodes, winners):
        qerror += winner.diff
        if map.is_vq:
            if node.winner != winner.codeno:
                changes += 1
            node.winner = winner.codeno
        else:
            x, y = map.coordinates(winner.codeno)
            if (node.x, node.y) != (x, y):
                changes += 1
            node.x, node.y = x, y
    return changes, qerror


def k_step_approximation(
    map: Map,
    graphs: list[Graph],
    contextual: bool = True,
    ncpu: int = 1,
) -> float:
    """Propagate positions through every graph; returns the mean quantization error.

    With ``contextual`` both child and parent positions are encoded,
    otherwise only child positions.
    """
    if contextual and map.is_vq:
        raise ConfigurationError("Contextual mode is not supported for VQ maps.")
    qerror = 0.0
    numnodes = 0
    for graph in graphs:
        round_error = 0.0
        for _ in range(graph.depth + 1):
            _, round_error = propagation_round(map, graph, contextual, ncpu)
        update_states(graph, map.is_vq, contextual)
        qerror += round_error
        numnodes += graph.numnodes
    if numnodes == 0:
        return 0.0
    return qerror / numnodes
