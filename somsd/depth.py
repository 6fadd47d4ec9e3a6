"""Node depth assignment.

The depth of a node is the length of the longest path from the node down to
a leaf. Three interchangeable algorithms are offered; ``set_node_depth``
picks one based on the size of the dataset.
"""

import logging
import sys
from contextlib import contextmanager

from somsd.graph import Graph, Node

logger = logging.getLogger(__name__)

RECURSIVE_MAX_NODES = 1000
REVERSE_BFS_MAX_FANOUT = 5


@contextmanager
def _recursion_headroom(frames: int):
    old = sys.getrecursionlimit()
    sys.setrecursionlimit(max(old, frames + 200))
    try:
        yield
    finally:
        sys.setrecursionlimit(old)


def _max_path_length(graph: Graph, node: Node, maxiter: int) -> int:
    if maxiter <= 0:
        return 0
    if node.depth != 0 or node.num_children == 0:
        return node.depth
    depth = 0
    for child in graph.children_of(node):
        depth = max(depth, _max_path_length(graph, child, maxiter - 1) + 1)
    node.depth = depth
    return depth


def set_depth_recursive(graphs: list[Graph]):
    """Depth by memoised recursion.

    The recursion is bounded by the number of nodes in the graph; a cyclic
    graph therefore ends with meaningless, but finite, depth values.
    """
    for graph in graphs:
        for node in graph.nodes:
            node.depth = 0
        with _recursion_headroom(graph.numnodes):
            for node in graph.nodes:
                node.depth = _max_path_length(graph, node, graph.numnodes)
        graph.depth = max((n.depth for n in graph.nodes), default=0)


def set_depth_iterative(graphs: list[Graph]):
    """Depth by repeated relaxation until no node changes."""
    for graph in graphs:
        for node in graph.nodes:
            node.depth = 0
        for _ in range(graph.numnodes + 1):
            changes = 0
            for node in graph.nodes:
                if node.num_children == 0:
                    continue
                depth = max(child.depth for child in graph.children_of(node)) + 1
                if depth != node.depth:
                    node.depth = depth
                    changes += 1
            if not changes:
                break
        graph.depth = max((n.depth for n in graph.nodes), default=0)


def set_depth_reverse_bfs(graphs: list[Graph]):
    """Depth by walking upward from the leaves one level at a time.

    A node reached at level ``k`` has a path of length ``k`` to some leaf;
    the last level that reaches it is its longest one.
    """
    for graph in graphs:
        for node in graph.nodes:
            node.depth = 0
        frontier = [n.nnum for n in graph.nodes if n.num_children == 0]
        level = 0
        while frontier and level < graph.numnodes:
            level += 1
            upper: dict[int, None] = {}
            for nnum in frontier:
                for parent in graph.nodes[nnum].parents:
                    graph.nodes[parent].depth = level
                    upper[parent] = None
            frontier = list(upper)
        graph.depth = max((n.depth for n in graph.nodes), default=0)


def set_node_depth(graphs: list[Graph]):
    if not graphs:
        return
    max_nodes = max(g.numnodes for g in graphs)
    max_fan_out = max(g.fan_out for g in graphs)
    if max_nodes < RECURSIVE_MAX_NODES:
        set_depth_recursive(graphs)
    elif max_fan_out < REVERSE_BFS_MAX_FANOUT:
        logger.info("Large graphs: computing depth breadth-first")
        set_depth_reverse_bfs(graphs)
    else:
        logger.info("Large graphs with high outdegree: computing depth iteratively")
        set_depth_iterative(graphs)
