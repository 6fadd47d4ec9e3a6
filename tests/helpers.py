"""Shared helpers for somsd tests."""

from somsd.graph import Graph


def build_graph(labels, links, fan_out=2, fan_in=0, ldim=1, tdim=0, name=None):
    """Graph with one node per entry of ``labels``; ``links[i]`` lists node i's children."""
    graph = Graph(ldim=ldim, fan_out=fan_out, fan_in=fan_in, tdim=tdim, name=name)
    for label in labels:
        node = graph.add_node()
        node.points[:ldim] = label
    for parent, children in enumerate(links):
        for slot, child in enumerate(children):
            if child is not None:
                graph.link(parent, slot, child)
    return graph
