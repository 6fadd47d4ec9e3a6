import logging

import numpy as np

from somsd.codebook import Map, Neighborhood, Topology, hexa_distance
from somsd.config import InitMode, MapSpec
from somsd.errors import ConfigurationError
from somsd.graph import Graph
from somsd.winner import neighbour_ids, vq_dimension, vq_set_ab

logger = logging.getLogger(__name__)


def _value_ranges(graphs: list[Graph], dim: int, noc: int, vq: bool):
    first = graphs[0]
    if not vq:
        points = np.array([n.points[:dim] for g in graphs for n in g.nodes])
        return points.min(axis=0), points.max(axis=0)

    rows = []
    for graph in graphs:
        for node in graph.nodes:
            row = np.zeros(dim)
            row[: graph.ldim] = node.points[: graph.ldim]
            offset = graph.ldim
            child_ids, parent_ids = neighbour_ids(graph, node, noc)
            for nid in child_ids + parent_ids:
                if nid >= 0:
                    row[offset + nid] = 1.0
                offset += noc
            toff = graph.target_offset
            row[offset : offset + graph.tdim] = node.points[toff : toff + graph.tdim]
            rows.append(row)
    points = np.array(rows)
    mins, maxs = points.min(axis=0), points.max(axis=0)
    # one-hot regions nobody points into get the full [0, 1] range
    offset = first.ldim
    for _ in range(first.fan_out + first.fan_in):
        region = slice(offset, offset + noc)
        if maxs[region].max(initial=0.0) == 0.0:
            mins[region] = 0.0
            maxs[region] = 1.0
        offset += noc
    return mins, maxs


def initialize_map(graphs: list[Graph], spec: MapSpec) -> Map:
    """Create a map whose codebooks lie within the ranges found in the data.

    ``InitMode.RANDOM`` draws every value uniformly from its dimension's
    range, ``InitMode.LINEAR`` places values by the codebook's hexagonal
    distance from the grid origin.
    """
    noc = spec.xdim * spec.ydim
    if noc == 0:
        raise ConfigurationError("Network dimension is zero!")
    nodes = sum(g.numnodes for g in graphs)
    dim = max((g.dimension for g in graphs), default=0)
    if dim == 0 or nodes == 0:
        raise ConfigurationError("Dimension of training data is zero!")

    if any(g.dimension != dim for g in graphs):
        raise ConfigurationError("Graphs of different dimension; the data needs padding.")

    vq = spec.topology == Topology.VQ
    first = graphs[0]
    if vq:
        dim = vq_dimension(first, noc)
    neighborhood = Neighborhood.NONE if vq else spec.neighborhood
    map = Map(spec.xdim, spec.ydim, dim, spec.topology, neighborhood)
    logger.info("Initializing %dx%d map with %d dimensions", spec.xdim, spec.ydim, dim)

    mins, maxs = _value_ranges(graphs, dim, noc, vq)
    if not vq:
        for x in range(first.child_offset, first.target_offset, 2):
            # no position information in the data at all
            if np.all(mins[x : x + 2] == -1) and np.all(maxs[x : x + 2] == -1):
                mins[x], maxs[x] = 0.0, spec.xdim - 1
                mins[x + 1], maxs[x + 1] = 0.0, spec.ydim - 1
    span = maxs - mins

    if spec.init_mode == InitMode.LINEAR:
        dist = np.sqrt(hexa_distance(map.cx, map.cy, 0, 0))
        maxdist = dist.max()
        fraction = dist / maxdist if maxdist > 0 else np.zeros(noc)
        map.codes = mins + fraction[:, None] * span
    else:
        rng = np.random.default_rng(spec.seed)
        map.codes = mins + rng.random((noc, dim)) * span

    if vq:
        vq_set_ab(map, first)
    return map
