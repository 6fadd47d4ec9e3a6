import logging

import numpy as np

from somsd.graph import Graph

logger = logging.getLogger("somsd")
logger.handlers.clear()
console_handler = logging.StreamHandler()
formatter = logging.Formatter(
    fmt="%(asctime)s - %(levelname)s - %(name)s - %(lineno)d - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
console_handler.setFormatter(formatter)
logger.addHandler(console_handler)
logger.setLevel(logging.INFO)


class LabelRegistry:
    """Interned symbolic labels, numbered from 1 in order of appearance."""

    def __init__(self):
        self.labels: list[str] = []
        self._index: dict[str, int] = {}

    def add(self, label: str | None) -> int | None:
        if label is None:
            return None
        index = self._index.get(label)
        if index is None:
            self.labels.append(label)
            index = len(self.labels)
            self._index[label] = index
        return index

    def get(self, index: int | None) -> str | None:
        if index is None or index < 1 or index > len(self.labels):
            return None
        return self.labels[index - 1]

    def __len__(self):
        return len(self.labels)

    def sorted_index(self) -> list[int]:
        """Label indices ordered alphabetically by label."""
        return [i + 1 for i in sorted(range(len(self.labels)), key=self.labels.__getitem__)]


def set_weight_values(graphs: list[Graph], mu1: float, mu2: float, mu3: float, mu4: float):
    for graph in graphs:
        mu = np.empty(graph.dimension)
        mu[: graph.child_offset] = mu1
        mu[graph.child_offset : graph.parent_offset] = mu2
        mu[graph.parent_offset : graph.target_offset] = mu3
        mu[graph.target_offset :] = mu4
        for node in graph.nodes:
            node.mu = mu.copy()


def sort_nodes_by_depth(graphs: list[Graph]):
    for graph in graphs:
        graph.order = sorted(range(graph.numnodes), key=lambda i: graph.nodes[i].depth)


def randomize_node_order(graphs: list[Graph], rng: np.random.Generator):
    for graph in graphs:
        graph.order = [int(i) for i in rng.permutation(graph.numnodes)]


def randomize_graph_order(graphs: list[Graph], rng: np.random.Generator) -> list[Graph]:
    return [graphs[int(i)] for i in rng.permutation(len(graphs))]


def vq_init_winner(graphs: list[Graph]):
    for graph in graphs:
        for node in graph.nodes:
            node.winner = -1


def check_padding(graphs: list[Graph]) -> list[str]:
    """Names of the node segments whose size differs between graphs."""
    if len({g.dimension for g in graphs}) <= 1:
        return []
    segments = {
        "Data label component": lambda g: g.ldim,
        "Data child state vector": lambda g: g.fan_out,
        "Data parent state vector": lambda g: g.fan_in,
        "Data target vector": lambda g: g.tdim,
    }
    needs = [name for name, size in segments.items() if len({size(g) for g in graphs}) > 1]
    for name in needs:
        logger.warning("%s requires padding.", name)
    return needs


def prepare_data(
    graphs: list[Graph],
    mu: tuple[float, float, float, float],
    vq: bool = False,
    node_order: str = "depth",
    rng: np.random.Generator | None = None,
):
    """Get a dataset ready for mapping: weights, processing order and VQ winners."""
    check_padding(graphs)
    set_weight_values(graphs, *mu)
    if node_order == "random":
        randomize_node_order(graphs, rng if rng is not None else np.random.default_rng())
    else:
        sort_nodes_by_depth(graphs)
    if vq:
        vq_init_winner(graphs)
