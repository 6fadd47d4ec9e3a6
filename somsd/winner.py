"""Best matching codebook search.

The distance between a node and codebook ``c`` is the weighted squared
Euclidean distance ``sum_i mu_i * (c_i - x_i)**2`` over the node's active
dimensions. ``find_winner`` prunes candidates segment by segment against
the distance of a known candidate (the node's previous winner) and returns
exactly the same winner and distance as ``find_winner_exhaustive``: both
accumulate the terms strictly left to right, and ties go to the lowest
codebook index.

VQ codebooks replace the child and parent state segments by one one-hot
region of ``noc`` entries per neighbour slot. Their distance is computed
from the cached squared norms ``map.a`` / ``map.b`` plus one lookup per
neighbour id.
"""

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from somsd.codebook import Map
from somsd.graph import Graph, Node


@dataclass(frozen=True)
class Winner:
    codeno: int
    diff: float


def weighted_terms(codes, sample, mu):
    return (codes - sample) ** 2 * mu


def sequential_sum(running: npt.NDArray, terms: npt.NDArray) -> npt.NDArray:
    """Row sums of ``terms`` added strictly left to right onto ``running``."""
    if terms.shape[1] == 0:
        return running
    return np.cumsum(np.concatenate((running[:, None], terms), axis=1), axis=1)[:, -1]


def node_weights(graph: Graph, node: Node) -> npt.NDArray[np.float64]:
    if node.mu is None:
        return np.ones(graph.dimension, dtype=np.float64)
    return node.mu[: graph.dimension]


def segments(graph: Graph) -> list[tuple[int, int]]:
    bounds = [
        (0, graph.child_offset),
        (graph.child_offset, graph.parent_offset),
        (graph.parent_offset, graph.target_offset),
        (graph.target_offset, graph.dimension),
    ]
    return [(start, stop) for start, stop in bounds if stop > start]


def _hint(map: Map, node: Node) -> int:
    if map.is_vq:
        return node.winner if 0 <= node.winner < map.noc else 0
    if 0 <= node.x < map.xdim and 0 <= node.y < map.ydim:
        return map.codeno(node.x, node.y)
    return 0


def _pick(alive: npt.NDArray, running: npt.NDArray) -> Winner:
    best = int(np.argmin(running))
    return Winner(int(alive[best]), float(running[best]))


def find_winner_exhaustive(map: Map, node: Node, graph: Graph) -> Winner:
    vdim = graph.dimension
    terms = weighted_terms(map.codes[:, :vdim], node.points[:vdim], node_weights(graph, node))
    diffs = sequential_sum(np.zeros(map.noc), terms)
    return _pick(np.arange(map.noc), diffs)


def find_winner(map: Map, node: Node, graph: Graph, hint: int | None = None) -> Winner:
    vdim = graph.dimension
    sample = node.points[:vdim]
    mu = node_weights(graph, node)
    if hint is None:
        hint = _hint(map, node)

    bound = sequential_sum(
        np.zeros(1), weighted_terms(map.codes[hint : hint + 1, :vdim], sample, mu)
    )[0]
    if np.isnan(bound):
        bound = np.inf

    alive = np.arange(map.noc)
    running = np.zeros(map.noc)
    for start, stop in segments(graph):
        terms = weighted_terms(
            map.codes[alive, start:stop], sample[start:stop], mu[start:stop]
        )
        running = sequential_sum(running, terms)
        keep = running <= bound
        alive = alive[keep]
        running = running[keep]
    return _pick(alive, running)


# --- VQ --------------------------------------------------------------------


def vq_dimension(graph: Graph, noc: int) -> int:
    return graph.ldim + (graph.fan_out + graph.fan_in) * noc + graph.tdim


def vq_set_ab(map: Map, graph: Graph):
    """Recompute the cached child/parent region norms of every codebook."""
    start = graph.ldim
    mid = start + graph.fan_out * map.noc
    stop = mid + graph.fan_in * map.noc
    map.a = np.sum(map.codes[:, start:mid] ** 2, axis=1)
    map.b = np.sum(map.codes[:, mid:stop] ** 2, axis=1)


def neighbour_ids(graph: Graph, node: Node, noc: int) -> tuple[list[int], list[int]]:
    """Winner ids stored in the node's child and parent state slots.

    Ids outside ``0..noc-1`` (including the -1 sentinel) are dropped.
    """
    child = [
        int(node.points[graph.child_offset + 2 * i]) for i in range(graph.fan_out)
    ]
    parent = [
        int(node.points[graph.parent_offset + 2 * i]) for i in range(graph.fan_in)
    ]
    return (
        [i if 0 <= i < noc else -1 for i in child],
        [i if 0 <= i < noc else -1 for i in parent],
    )


def _region_diff(codes, base, region_offset, ids, noc):
    diff = base.copy()
    for i, nid in enumerate(ids):
        if nid >= 0:
            diff = diff + (1.0 - 2.0 * codes[:, region_offset + noc * i + nid])
    # a squared norm; rounding must not make it negative
    return np.maximum(diff, 0.0)


def vq_find_winner(map: Map, node: Node, graph: Graph, hint: int | None = None) -> Winner:
    noc = map.noc
    ldim, tdim = graph.ldim, graph.tdim
    sample = node.points
    mu = node_weights(graph, node)
    child_ids, parent_ids = neighbour_ids(graph, node, noc)
    child_region = ldim
    parent_region = ldim + noc * graph.fan_out
    target_region = ldim + noc * (graph.fan_out + graph.fan_in)
    toff = graph.target_offset

    def label_part(codes, running):
        terms = weighted_terms(codes[:, :ldim], sample[:ldim], mu[:ldim])
        return sequential_sum(running, terms)

    def child_part(codes, running, rows):
        diff = _region_diff(codes, map.a[rows], child_region, child_ids, noc)
        return running + diff * mu[graph.child_offset]

    def parent_part(codes, running, rows):
        diff = _region_diff(codes, map.b[rows], parent_region, parent_ids, noc)
        return running + diff * mu[graph.parent_offset]

    def target_part(codes, running):
        terms = weighted_terms(
            codes[:, target_region : target_region + tdim],
            sample[toff : toff + tdim],
            mu[toff : toff + tdim],
        )
        return sequential_sum(running, terms)

    def distance(rows, running, step):
        codes = map.codes[rows]
        match step:
            case 0:
                return label_part(codes, running)
            case 1:
                return child_part(codes, running, rows)
            case 2:
                return parent_part(codes, running, rows)
            case _:
                return target_part(codes, running)

    steps = [0]
    if graph.fan_out:
        steps.append(1)
    if graph.fan_in:
        steps.append(2)
    steps.append(3)

    if hint is None:
        hint = _hint(map, node)
    hint_rows = np.array([hint])
    bound = np.zeros(1)
    for step in steps:
        bound = distance(hint_rows, bound, step)
    bound = np.inf if np.isnan(bound[0]) else bound[0]

    alive = np.arange(noc)
    running = np.zeros(noc)
    for step in steps:
        running = distance(alive, running, step)
        keep = running <= bound
        alive = alive[keep]
        running = running[keep]
    return _pick(alive, running)


def vq_expand(map: Map, graph: Graph, node: Node):
    """The node as a dense VQ vector with matching per-dimension weights."""
    noc = map.noc
    ldim, tdim = graph.ldim, graph.tdim
    mu = node_weights(graph, node)
    child_ids, parent_ids = neighbour_ids(graph, node, noc)
    dim = vq_dimension(graph, noc)
    x = np.zeros(dim)
    w = np.zeros(dim)
    x[:ldim] = node.points[:ldim]
    w[:ldim] = mu[:ldim]
    offset = ldim
    for ids, weight in (
        (child_ids, mu[graph.child_offset] if graph.fan_out else 0.0),
        (parent_ids, mu[graph.parent_offset] if graph.fan_in else 0.0),
    ):
        for nid in ids:
            if nid >= 0:
                x[offset + nid] = 1.0
            w[offset : offset + noc] = weight
            offset += noc
    toff = graph.target_offset
    x[offset : offset + tdim] = node.points[toff : toff + tdim]
    w[offset : offset + tdim] = mu[toff : toff + tdim]
    return x, w


def vq_find_winner_exhaustive(map: Map, node: Node, graph: Graph) -> Winner:
    """VQ winner by direct evaluation of the dense squared distance."""
    x, w = vq_expand(map, graph, node)
    terms = weighted_terms(map.codes[:, : x.size], x, w)
    return _pick(np.arange(map.noc), sequential_sum(np.zeros(map.noc), terms))


def winner_finder(map: Map):
    return vq_find_winner if map.is_vq else find_winner
