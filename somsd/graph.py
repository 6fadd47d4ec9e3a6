"""In-memory model of structured data: graphs made of labelled nodes.

A node's feature vector ``points`` is split into four consecutive segments::

    [ label (ldim) | child states (2*fan_out) | parent states (2*fan_in) | target (tdim) ]

Children are stored by index into ``Graph.nodes`` (``None`` for an empty
slot), parents by index as well. Node ids are dense: node ``i`` lives at
``graph.nodes[i]`` and has ``nnum == i``.
"""

import enum
import logging
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from somsd.diagnostics import Diagnostics
from somsd.errors import DataFormatError

logger = logging.getLogger(__name__)


class NodeType(enum.IntFlag):
    LEAF = 1
    ROOT = 2
    INTERMEDIATE = 4
    ALL = LEAF | ROOT | INTERMEDIATE


@dataclass(eq=False)
class Node:
    points: npt.NDArray[np.float64]
    nnum: int = 0
    depth: int = 0
    children: list[int | None] = field(default_factory=list)
    parents: list[int] = field(default_factory=list)
    label: int | None = None
    mu: npt.NDArray[np.float64] | None = None
    x: int = -1
    y: int = -1
    winner: int = -1

    @property
    def numparents(self) -> int:
        return len(self.parents)

    @property
    def num_children(self) -> int:
        return sum(1 for c in self.children if c is not None)

    @property
    def node_type(self) -> NodeType:
        if self.numparents == 0:
            return NodeType.ROOT
        if self.depth == 0:
            return NodeType.LEAF
        return NodeType.INTERMEDIATE


@dataclass(eq=False)
class Graph:
    ldim: int
    fan_out: int
    fan_in: int = 0
    tdim: int = 0
    nodes: list[Node] = field(default_factory=list)
    name: str | None = None
    gnum: int = 0
    depth: int = 0
    order: list[int] = field(default_factory=list)

    @property
    def dimension(self) -> int:
        return self.ldim + 2 * (self.fan_out + self.fan_in) + self.tdim

    @property
    def numnodes(self) -> int:
        return len(self.nodes)

    @property
    def child_offset(self) -> int:
        return self.ldim

    @property
    def parent_offset(self) -> int:
        return self.ldim + 2 * self.fan_out

    @property
    def target_offset(self) -> int:
        return self.ldim + 2 * (self.fan_out + self.fan_in)

    def new_node(self, nnum: int | None = None) -> Node:
        """Create a node with all state slots set to the -1 sentinel."""
        points = np.zeros(self.dimension, dtype=np.float64)
        points[self.child_offset : self.target_offset] = -1.0
        return Node(
            points=points,
            nnum=len(self.nodes) if nnum is None else nnum,
            children=[None] * self.fan_out,
        )

    def add_node(self, node: Node | None = None) -> Node:
        if node is None:
            node = self.new_node()
        node.nnum = len(self.nodes)
        if len(node.children) < self.fan_out:
            node.children.extend([None] * (self.fan_out - len(node.children)))
        self.nodes.append(node)
        self.order.append(node.nnum)
        return node

    def link(self, parent: int, slot: int, child: int):
        """Make ``child`` the ``slot``-th child of ``parent``."""
        self.nodes[parent].children[slot] = child
        self.nodes[child].parents.append(parent)

    def children_of(self, node: Node):
        for c in node.children:
            if c is not None:
                yield self.nodes[c]

    def parents_of(self, node: Node):
        for p in node.parents:
            yield self.nodes[p]

    def ordered_nodes(self):
        for idx in self.order:
            yield self.nodes[idx]

    def link_nodes(
        self,
        links: list[list[int]],
        diagnostics: Diagnostics | None = None,
    ):
        """Resolve the raw link lists read for every node.

        A link index outside ``0..numnodes-1`` is reported as a warning and
        treated as an absent child.
        """
        for node, node_links in zip(self.nodes, links):
            for slot, target in enumerate(node_links[: self.fan_out]):
                if target < 0:
                    continue
                if target >= self.numnodes:
                    if diagnostics is not None:
                        diagnostics.warn(
                            "dangling-link",
                            f"Graph {self.gnum}: node {node.nnum} links to "
                            f"non-existing node {target}, link ignored.",
                        )
                    continue
                self.link(node.nnum, slot, target)

    @classmethod
    def from_nodes(cls, nodes: list[Node], **kwargs) -> "Graph":
        """Build a graph from nodes carrying explicit ``nnum`` ids.

        Ids must be unique and cover ``0..len(nodes)-1`` exactly.
        """
        graph = cls(**kwargs)
        placed: list[Node | None] = [None] * len(nodes)
        for node in nodes:
            if node.nnum < 0 or node.nnum >= len(nodes):
                raise DataFormatError(
                    f"Node id {node.nnum} does not fit a graph of {len(nodes)} nodes."
                )
            if placed[node.nnum] is not None:
                raise DataFormatError(f"Node id {node.nnum} appears twice.")
            placed[node.nnum] = node
        graph.nodes = placed  # type: ignore[assignment]
        graph.order = list(range(len(nodes)))
        return graph


def to_undirected(graphs: list[Graph]):
    """Make every link bidirectional by adding each parent to its child's child slots.

    Parent lists are left as they are.
    """
    logger.info("Converting all links in dataset to undirected links")
    for graph in graphs:
        for node in graph.nodes:
            for c in list(node.children):
                if c is None:
                    continue
                child = graph.nodes[c]
                if node.nnum in child.children:
                    continue
                if None not in child.children:
                    raise DataFormatError(
                        f"Graph {graph.gnum}: FanOut {graph.fan_out} too small, "
                        "cannot convert to undirected links."
                    )
                child.children[child.children.index(None)] = node.nnum
