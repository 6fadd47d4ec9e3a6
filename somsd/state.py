"""Encoding of neighbour positions into a node's state segments."""

from somsd.graph import Graph, Node


def update_children_location(graph: Graph, node: Node):
    offset = graph.child_offset
    for i, c in enumerate(node.children[: graph.fan_out]):
        if c is None:
            continue
        child = graph.nodes[c]
        node.points[offset + 2 * i] = child.x
        node.points[offset + 2 * i + 1] = child.y


def update_children_location_vq(graph: Graph, node: Node):
    # VQ codebooks have no grid position; the child's winner id is stored instead
    offset = graph.child_offset
    for i, c in enumerate(node.children[: graph.fan_out]):
        if c is None:
            continue
        node.points[offset + 2 * i] = graph.nodes[c].winner


def update_children_and_parent_location(graph: Graph, node: Node):
    update_children_location(graph, node)
    offset = graph.parent_offset
    for i, p in enumerate(node.parents[: graph.fan_in]):
        parent = graph.nodes[p]
        node.points[offset + 2 * i] = parent.x
        node.points[offset + 2 * i + 1] = parent.y


def state_updater(vq: bool = False, contextual: bool = False):
    if contextual:
        return update_children_and_parent_location
    if vq:
        return update_children_location_vq
    return update_children_location


def update_states(graph: Graph, vq: bool = False, contextual: bool = False):
    update = state_updater(vq, contextual)
    for node in graph.nodes:
        update(graph, node)
