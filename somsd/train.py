"""Training of a map on a list of graphs.

A run goes through ``RunState.INITIALIZED -> RUNNING`` and then ends in
``CONVERGED`` (all iterations done) or ``INTERRUPTED`` (first cancellation
request), passing through ``CHECKPOINTED`` whenever a snapshot is written.
A second cancellation request aborts immediately with
:class:`~somsd.errors.TrainingInterrupted`.
"""

import enum
import logging
import math
import os
import signal
import sys
import threading
import time
from dataclasses import dataclass, field

import numpy as np

from somsd.adapt import adapter_for
from somsd.codebook import Map
from somsd.config import AlphaType, TrainingParameters, check_parameters
from somsd.data import prepare_data, randomize_graph_order
from somsd.diagnostics import Diagnostics
from somsd.errors import ConfigurationError, TrainingInterrupted
from somsd.fileio.mapfile import save_map, save_snapshot
from somsd.graph import Graph, Node, to_undirected
from somsd.kstep import k_step_approximation
from somsd.state import state_updater
from somsd.winner import Winner, vq_dimension, vq_set_ab, winner_finder

logger = logging.getLogger(__name__)

NICE_SLEEP_SECONDS = 60


def linear_alpha(t: int, tlen: int, alpha: float) -> float:
    return alpha * (tlen - t) / tlen


def exponential_alpha(t: int, tlen: int, alpha: float) -> float:
    c = tlen / 100.0
    return alpha * c / (c + t)


def sigmoidal_alpha(t: int, tlen: int, alpha: float) -> float:
    return alpha * math.exp(-4.0 * t * t / (tlen * tlen))


def constant_alpha(t: int, tlen: int, alpha: float) -> float:
    return alpha


ALPHA_FUNCTIONS = {
    AlphaType.LINEAR: linear_alpha,
    AlphaType.EXPONENTIAL: exponential_alpha,
    AlphaType.SIGMOIDAL: sigmoidal_alpha,
    AlphaType.CONSTANT: constant_alpha,
}


def radius_at(t: int, tlen: int, radius: float) -> float:
    return 1.0 + (radius - 1.0) * (tlen - t) / tlen


class RunState(enum.Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    CHECKPOINTED = "checkpointed"
    CONVERGED = "converged"
    INTERRUPTED = "interrupted"
    TERMINATED = "terminated"


class CancellationToken:
    """Two-level cancellation: the first request stops after the current
    iteration, the second aborts right away."""

    def __init__(self):
        self.level = 0

    def request(self) -> int:
        self.level += 1
        return self.level

    @property
    def soft(self) -> bool:
        return self.level >= 1

    @property
    def hard(self) -> bool:
        return self.level >= 2


def install_signal_handlers(token: CancellationToken):
    """Route SIGINT to ``token``; returns the previous handler."""

    def handler(signum, frame):
        if token.request() >= 2:
            logger.error("Second interrupt received, aborting without saving")
            raise TrainingInterrupted("Training aborted.")
        logger.warning("Interrupt received, stopping after the current iteration")

    return signal.signal(signal.SIGINT, handler)


def sleep_on_high_load(ncpu: int | None = None, interval: float = NICE_SLEEP_SECONDS):
    """Sleep while the 1-minute load average exceeds the CPU count by 20 %."""
    if not hasattr(os, "getloadavg"):
        return
    maxload = 1.2 * (ncpu or os.cpu_count() or 1)
    while os.getloadavg()[0] > maxload:
        logger.info("High system load: sleeping")
        time.sleep(interval)


@dataclass
class TrainingResult:
    state: RunState
    errors: list[float] = field(default_factory=list)
    output_file: str | None = None
    history: list[RunState] = field(default_factory=list)


class Trainer:
    def __init__(
        self,
        map: Map,
        graphs: list[Graph],
        params: TrainingParameters,
        token: CancellationToken | None = None,
        diagnostics: Diagnostics | None = None,
    ):
        self.map = map
        self.graphs = graphs
        self.params = params
        self.token = token if token is not None else CancellationToken()
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.rng = np.random.default_rng(params.seed)
        self.state = RunState.INITIALIZED
        self.history: list[RunState] = [self.state]
        self.errors: list[float] = []
        self.contextual = params.contextual
        # undirected links already carry the parents in the child slots
        self.kstep_parents = not params.undirected
        if self.contextual and self.kstep_parents and graphs and graphs[0].fan_in == 0:
            self.diagnostics.message(
                "Contextual mode requires parent states (FanIn > 0); training in normal mode."
            )
            self.contextual = False
        if self.contextual and map.is_vq:
            raise ConfigurationError("Contextual mode is not supported for VQ maps.")
        self._check_dimensions()
        self.update = state_updater(map.is_vq)
        self.find = winner_finder(map)
        self.adapt = adapter_for(map)
        self.alpha_function = ALPHA_FUNCTIONS[params.alpha_type]
        self.tlen = sum(g.numnodes for g in graphs) * max(params.iterations - map.iter, 0)
        self.t = 0

    def _check_dimensions(self):
        for graph in self.graphs:
            dim = vq_dimension(graph, self.map.noc) if self.map.is_vq else graph.dimension
            if dim != self.map.dim:
                raise ConfigurationError(
                    f"Dimension of codebooks ({self.map.dim}) != dimension of "
                    f"graph {graph.gnum} vectors ({dim})"
                )

    def _set_state(self, state: RunState):
        self.state = state
        self.history.append(state)

    def train_node(self, graph: Graph, node: Node) -> Winner:
        """One online update: schedule, winner search, adaptation."""
        if self.tlen > 0:
            alpha = self.alpha_function(self.t, self.tlen, self.params.alpha)
            radius = radius_at(self.t, self.tlen, self.params.radius)
        else:
            alpha, radius = self.params.alpha, self.params.radius
        if not self.contextual:
            self.update(graph, node)
        winner = self.find(self.map, node, graph)
        self.adapt(self.map, graph, node, winner, radius, alpha)
        self.t += 1
        return winner

    def run_epoch(self) -> float:
        graphs = self.graphs
        if self.params.graph_order == "random":
            graphs = randomize_graph_order(graphs, self.rng)
        qerror = 0.0
        numnodes = 0
        for graph in graphs:
            for node in graph.ordered_nodes():
                if self.token.hard:
                    raise TrainingInterrupted("Training aborted.")
                qerror += self.train_node(graph, node).diff
                numnodes += 1
        self.map.iter += 1
        return qerror / numnodes if numnodes else 0.0

    def run(self) -> TrainingResult:
        self._set_state(RunState.RUNNING)
        if self.map.is_vq:
            vq_set_ab(self.map, self.graphs[0])
        if self.contextual:
            k_step_approximation(self.map, self.graphs, self.kstep_parents, self.params.ncpu)

        logfile = None
        if self.params.log_file == "-":
            logfile = sys.stdout
        elif self.params.log_file:
            logfile = open(self.params.log_file, "w")
        try:
            while self.map.iter < self.params.iterations:
                if self.state == RunState.CHECKPOINTED:
                    self._set_state(RunState.RUNNING)
                qerror = self.run_epoch()
                if self.contextual:
                    k_step_approximation(self.map, self.graphs, self.kstep_parents, self.params.ncpu)
                self.errors.append(qerror)
                logger.debug("Iteration %d: qerror %f", self.map.iter, qerror)
                if logfile is not None:
                    logfile.write(f"{qerror:f}\n")
                    logfile.flush()

                if self.token.soft:
                    self._set_state(RunState.INTERRUPTED)
                    break
                interval = self.params.snapshot_interval
                if interval and self.map.iter % interval == 0:
                    save_snapshot(self.map, self.params)
                    self._set_state(RunState.CHECKPOINTED)
                if self.params.nice:
                    sleep_on_high_load(self.params.ncpu)
        finally:
            if logfile is not None and logfile is not sys.stdout:
                logfile.close()

        if self.state != RunState.INTERRUPTED:
            self._set_state(RunState.CONVERGED)
        return TrainingResult(self.state, list(self.errors), history=list(self.history))


def train_map(
    map: Map,
    graphs: list[Graph],
    params: TrainingParameters,
    token: CancellationToken | None = None,
    diagnostics: Diagnostics | None = None,
    handle_signals: bool = False,
) -> TrainingResult:
    """Validate parameters, train and save the map.

    An interrupted run is saved to ``interrupted<pid>.net`` instead of the
    configured output file. With ``handle_signals`` SIGINT feeds the
    cancellation token while training; this only works in the main thread.
    """
    if diagnostics is None:
        diagnostics = Diagnostics()
    params = check_parameters(params, map, graphs, diagnostics)
    diagnostics.raise_if_errors(ConfigurationError)

    rng = np.random.default_rng(params.seed)
    if params.undirected:
        to_undirected(graphs)
    prepare_data(graphs, params.mu, map.is_vq, params.node_order, rng)

    trainer = Trainer(map, graphs, params, token, diagnostics)
    diagnostics.flush(logger)
    logger.info("Training map for %d iterations", params.iterations - map.iter)
    if handle_signals:
        if threading.current_thread() is not threading.main_thread():
            raise ConfigurationError("Signal handlers can only be installed in the main thread.")
        previous = install_signal_handlers(trainer.token)
    try:
        result = trainer.run()
    finally:
        if handle_signals:
            signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)

    output = params.output_file
    if result.state == RunState.INTERRUPTED:
        output = f"interrupted{os.getpid()}.net"
        logger.warning("Training interrupted, saving map to %s", output)
    save_map(map, output, params)
    trainer._set_state(RunState.TERMINATED)
    result.history = list(trainer.history)
    result.output_file = output
    return result
