"""Evaluation of a trained map: node mapping, hit counts, classes and purity."""

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import pandas as pd
from scipy.spatial.distance import cdist
from sklearn import metrics

from somsd.codebook import Map, Topology, grid_distance
from somsd.data import LabelRegistry
from somsd.errors import ConfigurationError
from somsd.graph import Graph, Node, NodeType
from somsd.state import state_updater
from somsd.winner import vq_set_ab, winner_finder

logger = logging.getLogger(__name__)

IGNORED_LABEL = "*"


def get_node_coordinates(map: Map, graphs: list[Graph]) -> float:
    """Map every node once, bottom-up; returns the mean quantization error."""
    if map.is_vq and graphs:
        vq_set_ab(map, graphs[0])
    update = state_updater(map.is_vq)
    find = winner_finder(map)
    qerror = 0.0
    n = 0
    for graph in graphs:
        for node in graph.ordered_nodes():
            update(graph, node)
            winner = find(map, node, graph)
            if map.is_vq:
                node.winner = winner.codeno
            else:
                node.x, node.y = map.coordinates(winner.codeno)
            qerror += winner.diff
            n += 1
    return qerror / n if n else 0.0


def _cell(map: Map, node: Node) -> tuple[int, int] | None:
    if map.is_vq:
        return map.coordinates(node.winner) if 0 <= node.winner < map.noc else None
    if 0 <= node.x < map.xdim and 0 <= node.y < map.ydim:
        return node.x, node.y
    return None


@dataclass
class HitMap:
    activation: npt.NDArray[np.int64]
    roots: int

    @property
    def activated(self) -> int:
        return int(np.count_nonzero(self.activation))

    @property
    def max(self) -> int:
        return int(self.activation.max(initial=0))

    @property
    def compression_ratio(self) -> float:
        """Root nodes per activated neuron."""
        return self.roots / self.activated if self.activated else 0.0


def hit_map(map: Map, graphs: list[Graph], mode: NodeType = NodeType.ALL) -> HitMap:
    activation = np.zeros((map.ydim, map.xdim), dtype=np.int64)
    roots = 0
    for graph in graphs:
        for node in graph.nodes:
            node_type = node.node_type
            if not node_type & mode:
                continue
            cell = _cell(map, node)
            if cell is None:
                continue
            if node_type == NodeType.ROOT:
                roots += 1
            activation[cell[1], cell[0]] += 1
    hits = HitMap(activation, roots)
    logger.info("Neurons activated: %d", hits.activated)
    logger.info("Compression ratio: %f (root nodes only)", hits.compression_ratio)
    return hits


@dataclass
class ClassMap:
    """Label frequencies per neuron; ``winner_class`` holds 1-based label
    indices with 0 for neurons without a labelled hit."""

    frequencies: npt.NDArray[np.int64]
    winner_class: npt.NDArray[np.int64]


def winner_classes(map: Map, graphs: list[Graph], labels: LabelRegistry, mode: NodeType = NodeType.ALL) -> ClassMap:
    frequencies = np.zeros((map.ydim, map.xdim, len(labels)), dtype=np.int64)
    for graph in graphs:
        for node in graph.nodes:
            if not node.node_type & mode:
                continue
            label = labels.get(node.label)
            cell = _cell(map, node)
            if label is None or label == IGNORED_LABEL or cell is None:
                continue
            frequencies[cell[1], cell[0], node.label - 1] += 1
    winner_class = np.zeros((map.ydim, map.xdim), dtype=np.int64)
    if len(labels):
        has_hits = frequencies.sum(axis=2) > 0
        winner_class[has_hits] = np.argmax(frequencies, axis=2)[has_hits] + 1
    return ClassMap(frequencies, winner_class)


@dataclass
class ConfusionResult:
    table: pd.DataFrame
    on_diagonal: int
    off_diagonal: int

    @property
    def confusion(self) -> float:
        """Misclassified per correctly classified node, in percent."""
        return 100.0 * self.off_diagonal / self.on_diagonal if self.on_diagonal else 0.0


def confusion_matrix(map: Map, graphs: list[Graph], labels: LabelRegistry, classes: ClassMap, mode: NodeType = NodeType.ALL) -> ConfusionResult:
    """Node label against the majority label of the node's neuron.

    Rows and columns are ordered alphabetically by label.
    """
    y_true, y_pred = [], []
    for graph in graphs:
        for node in graph.nodes:
            if not node.node_type & mode:
                continue
            label = labels.get(node.label)
            cell = _cell(map, node)
            if label is None or label == IGNORED_LABEL or cell is None:
                continue
            predicted = labels.get(int(classes.winner_class[cell[1], cell[0]]))
            if predicted is None:
                continue
            y_true.append(label)
            y_pred.append(predicted)
    order = [labels.get(i) for i in labels.sorted_index()]
    order = [label for label in order if label != IGNORED_LABEL]
    matrix = metrics.confusion_matrix(y_true, y_pred, labels=order) if y_true else np.zeros((len(order), len(order)), dtype=np.int64)
    on_diagonal = int(np.trace(matrix))
    off_diagonal = int(matrix.sum()) - on_diagonal
    table = pd.DataFrame(matrix, index=order, columns=order)
    logger.info("On diagonal: %d, off diagonal: %d", on_diagonal, off_diagonal)
    return ConfusionResult(table, on_diagonal, off_diagonal)


def clustering_performance(map: Map, classes: ClassMap) -> float:
    """Mean share of each labelled neuron's class among its grid neighbours' hits."""
    xdim, ydim = map.xdim, map.ydim
    offsets = [0, 1, -1, xdim, -xdim + 1, -xdim, -xdim - 1]
    if map.topology == Topology.RECT:
        offsets += [xdim - 1, xdim + 1]
    elif map.topology != Topology.HEXA:
        raise ConfigurationError(
            f"Clustering performance is not defined for {map.topology.file_name} maps."
        )

    totals = classes.frequencies.sum(axis=2)
    performance = 0.0
    counted = 0
    for mid in range(map.noc):
        x, y = map.coordinates(mid)
        best = int(classes.winner_class[y, x]) - 1
        if best < 0:
            continue
        shares = []
        for offset in offsets:
            nid = mid + offset
            if nid < 0 or nid >= map.noc:
                continue
            nx, ny = map.coordinates(nid)
            if abs(nx - x) <= 1 and abs(ny - y) <= 1 and totals[ny, nx] > 0:
                shares.append(classes.frequencies[ny, nx, best] / totals[ny, nx])
        if shares:
            performance += sum(shares) / len(shares)
            counted += 1
    return performance / counted if counted else 0.0


def u_matrix(map: Map) -> npt.NDArray[np.float64]:
    """Mean codebook distance of every neuron to its direct grid neighbours."""
    grid = grid_distance(map.topology, map.cx[:, None], map.cy[:, None], map.cx[None, :], map.cy[None, :])
    neighbours = (grid <= 1.0) & ~np.eye(map.noc, dtype=bool)
    distances = cdist(map.codes, map.codes)
    counts = neighbours.sum(axis=1)
    sums = np.where(neighbours, distances, 0.0).sum(axis=1)
    mean = np.divide(sums, counts, out=np.zeros(map.noc), where=counts > 0)
    return mean.reshape(map.ydim, map.xdim)
