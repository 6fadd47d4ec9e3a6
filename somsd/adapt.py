"""Codebook adaptation after a winner has been found.

Neighbourhoods are measured with the squared hexagonal grid distance for
every grid topology.
"""

import numpy as np

from somsd.codebook import Map, Neighborhood, hexa_distance
from somsd.graph import Graph, Node
from somsd.winner import Winner, neighbour_ids


def _move_to_winner(map: Map, node: Node, winner: Winner):
    node.x, node.y = map.coordinates(winner.codeno)
    return hexa_distance(node.x, node.y, map.cx, map.cy)


def bubble_adapt(map: Map, graph: Graph, node: Node, winner: Winner, radius: float, alpha: float):
    """Move every codebook within ``radius`` of the winner by ``alpha``."""
    dist = _move_to_winner(map, node, winner)
    mask = dist <= radius * radius
    sample = node.points[: map.dim]
    map.codes[mask] += alpha * (sample - map.codes[mask])


def gaussian_adapt(map: Map, graph: Graph, node: Node, winner: Winner, radius: float, alpha: float):
    """Move every codebook by ``alpha * exp(-d / (2 radius^2))``, d the squared grid distance."""
    dist = _move_to_winner(map, node, winner)
    if radius > 0:
        factor = alpha * np.exp(dist / (-2.0 * radius * radius))
    else:
        factor = np.where(dist == 0, alpha, 0.0)
    sample = node.points[: map.dim]
    map.codes += factor[:, None] * (sample - map.codes)


def _adapt_one_hot(region, nid, alpha):
    target = np.zeros(region.size)
    if nid >= 0:
        target[nid] = 1.0
    region += alpha * (target - region)


def vq_adapt(map: Map, graph: Graph, node: Node, winner: Winner, radius: float, alpha: float):
    """Adapt only the winning codebook; radius is unused.

    The one-hot regions move towards the neighbours' winner ids and the
    cached norms ``a``/``b`` of the winner are refreshed.
    """
    noc = map.noc
    ldim = graph.ldim
    node.winner = winner.codeno
    code = map.codes[winner.codeno]
    code[:ldim] += alpha * (node.points[:ldim] - code[:ldim])

    child_ids, parent_ids = neighbour_ids(graph, node, noc)
    offset = ldim
    for i, nid in enumerate(child_ids):
        _adapt_one_hot(code[offset + noc * i : offset + noc * (i + 1)], nid, alpha)
    child_stop = offset + noc * graph.fan_out
    map.a[winner.codeno] = np.sum(code[offset:child_stop] ** 2)

    offset = child_stop
    for i, nid in enumerate(parent_ids):
        _adapt_one_hot(code[offset + noc * i : offset + noc * (i + 1)], nid, alpha)
    parent_stop = offset + noc * graph.fan_in
    map.b[winner.codeno] = np.sum(code[offset:parent_stop] ** 2)

    toff = graph.target_offset
    tdim = graph.tdim
    code[parent_stop : parent_stop + tdim] += alpha * (
        node.points[toff : toff + tdim] - code[parent_stop : parent_stop + tdim]
    )


def adapter_for(map: Map):
    if map.is_vq:
        return vq_adapt
    if map.neighborhood == Neighborhood.BUBBLE:
        return bubble_adapt
    return gaussian_adapt
