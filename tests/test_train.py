"""Tests for the training loop and its schedules."""

import math
import os
import signal
import threading

import numpy as np
import pytest

from somsd import train as train_module
from somsd.codebook import Map, Neighborhood, Topology
from somsd.config import MapSpec, TrainingParameters
from somsd.data import set_weight_values, sort_nodes_by_depth
from somsd.depth import set_node_depth
from somsd.diagnostics import Diagnostics
from somsd.errors import ConfigurationError, TrainingInterrupted
from somsd.fileio.mapfile import load_map
from somsd.graph import to_undirected
from somsd.initializer import initialize_map
from somsd.train import (
    CancellationToken,
    RunState,
    Trainer,
    constant_alpha,
    exponential_alpha,
    install_signal_handlers,
    linear_alpha,
    radius_at,
    sigmoidal_alpha,
    sleep_on_high_load,
    train_map,
)
from tests.helpers import build_graph


@pytest.fixture
def hand_case(chain):
    """A leaf (label 0) below a root (label 1) on a 2x2 hexagonal map.

    Only the label is weighted. The leaf first wins codebook 1, the root
    codebook 2.
    """
    set_node_depth([chain])
    set_weight_values([chain], 1.0, 0.0, 0.0, 0.0)
    sort_nodes_by_depth([chain])
    codes = np.full((4, 3), -1.0)
    codes[:, 0] = [0.5, 0.1, 0.9, 0.5]
    map = Map(2, 2, 3, Topology.HEXA, Neighborhood.GAUSSIAN, codes=codes)
    params = TrainingParameters(iterations=5, alpha=1.0, radius=1.0, mu1=1.0, log_file=None)
    return map, chain, params


def test_alpha_schedules():
    assert linear_alpha(0, 10, 0.8) == 0.8
    assert linear_alpha(5, 10, 0.8) == pytest.approx(0.4)
    assert exponential_alpha(0, 10, 0.8) == 0.8
    assert exponential_alpha(10, 10, 0.8) == pytest.approx(0.8 * 0.1 / 10.1)
    assert sigmoidal_alpha(0, 10, 0.8) == 0.8
    assert sigmoidal_alpha(10, 10, 0.8) == pytest.approx(0.8 * math.exp(-4.0))
    assert constant_alpha(7, 10, 0.8) == 0.8


def test_radius_shrinks_to_one():
    assert radius_at(0, 10, 5.0) == 5.0
    assert radius_at(5, 10, 5.0) == pytest.approx(3.0)
    assert radius_at(10, 10, 5.0) == 1.0


def test_first_update_moves_the_winner_onto_the_leaf(hand_case):
    map, chain, params = hand_case
    trainer = Trainer(map, [chain], params)

    winner = trainer.train_node(chain, chain.nodes[1])

    assert winner.codeno == 1
    assert winner.diff == pytest.approx(0.01)
    assert map.codes[1, 0] == 0.0
    assert map.codes[0, 0] == pytest.approx(0.5 * (1 - math.exp(-0.5)))
    assert map.codes[2, 0] == pytest.approx(0.9 * (1 - math.exp(-1.5)))
    assert (chain.nodes[1].x, chain.nodes[1].y) == (1, 0)


def test_training_reduces_the_error(hand_case):
    map, chain, params = hand_case

    result = Trainer(map, [chain], params).run()

    assert result.state == RunState.CONVERGED
    assert len(result.errors) == 5
    assert result.errors[0] == pytest.approx(0.0502, abs=1e-4)
    assert all(a > b for a, b in zip(result.errors, result.errors[1:]))
    assert map.iter == 5
    assert result.history == [RunState.INITIALIZED, RunState.RUNNING, RunState.CONVERGED]


def test_training_resumes_from_map_iteration(hand_case):
    map, chain, params = hand_case
    map.iter = 3

    result = Trainer(map, [chain], params).run()

    assert len(result.errors) == 2


def test_errors_are_logged(tmp_path, hand_case):
    map, chain, params = hand_case
    log = tmp_path / "errors.log"

    Trainer(map, [chain], params.model_copy(update={"log_file": str(log)})).run()

    assert len(log.read_text().splitlines()) == 5


def test_first_cancellation_stops_after_the_iteration(hand_case):
    map, chain, params = hand_case
    token = CancellationToken()
    token.request()

    result = Trainer(map, [chain], params, token).run()

    assert result.state == RunState.INTERRUPTED
    assert len(result.errors) == 1


def test_second_cancellation_aborts(hand_case):
    map, chain, params = hand_case
    token = CancellationToken()
    token.request()
    token.request()

    with pytest.raises(TrainingInterrupted):
        Trainer(map, [chain], params, token).run()
    assert map.iter == 0


def test_snapshots_are_checkpoints(tmp_path, hand_case):
    map, chain, params = hand_case
    snapshot = tmp_path / "snap.net"
    params = params.model_copy(update={"snapshot_interval": 2, "snapshot_file": str(snapshot)})

    result = Trainer(map, [chain], params).run()

    assert result.history.count(RunState.CHECKPOINTED) == 2
    assert result.state == RunState.CONVERGED
    assert load_map(snapshot)[0].iter == 4


def test_contextual_needs_parent_states(hand_case):
    map, chain, params = hand_case
    diagnostics = Diagnostics()

    trainer = Trainer(map, [chain], params.model_copy(update={"contextual": True}), diagnostics=diagnostics)

    assert not trainer.contextual
    assert any("normal mode" in m for m in diagnostics.messages)


def test_contextual_training(small_map, dag):
    set_node_depth([dag])
    set_weight_values([dag], 0.5, 0.25, 0.25, 0.0)
    sort_nodes_by_depth([dag])
    map = small_map(dim=dag.dimension)
    params = TrainingParameters(iterations=3, alpha=0.5, radius=1.5, contextual=True)

    result = Trainer(map, [dag], params).run()

    assert result.state == RunState.CONVERGED
    assert len(result.errors) == 3


def test_contextual_vq_is_rejected(small_map, dag):
    params = TrainingParameters(iterations=1, alpha=0.5, contextual=True)

    with pytest.raises(ConfigurationError):
        Trainer(small_map(topology=Topology.VQ), [dag], params)


def test_dimension_mismatch_is_rejected(small_map, chain):
    with pytest.raises(ConfigurationError, match="Dimension of codebooks"):
        Trainer(small_map(dim=7), [chain], TrainingParameters(iterations=1))


def test_vq_training(tree):
    set_node_depth([tree])
    set_weight_values([tree], 1.0, 0.5, 0.0, 0.0)
    sort_nodes_by_depth([tree])
    map = initialize_map([tree], MapSpec(xdim=3, ydim=2, topology=Topology.VQ, seed=0))

    result = Trainer(map, [tree], TrainingParameters(iterations=4, alpha=0.5)).run()

    assert len(result.errors) == 4
    assert all(0 <= n.winner < map.noc for n in tree.nodes)


def test_train_map_saves_the_result(tmp_path, hand_case):
    map, chain, params = hand_case
    output = tmp_path / "trained.net"
    params = params.model_copy(update={"output_file": str(output), "log_file": str(tmp_path / "run.log")})

    result = train_map(map, [chain], params)

    assert result.output_file == str(output)
    assert result.history[-1] == RunState.TERMINATED
    loaded, header = load_map(output)
    assert loaded.iter == 5
    assert header["trainiter"] == "5"
    np.testing.assert_array_equal(loaded.codes, map.codes)


def test_interrupted_run_is_saved_separately(tmp_path, monkeypatch, hand_case):
    monkeypatch.chdir(tmp_path)
    map, chain, params = hand_case
    token = CancellationToken()
    token.request()

    result = train_map(map, [chain], params.model_copy(update={"output_file": "final.net"}), token)

    assert result.state == RunState.INTERRUPTED
    assert result.output_file == f"interrupted{os.getpid()}.net"
    assert (tmp_path / result.output_file).exists()
    assert not (tmp_path / "final.net").exists()


def test_train_map_rejects_an_empty_map(chain):
    with pytest.raises(ConfigurationError, match="No Map"):
        train_map(Map(0, 0, 3), [chain], TrainingParameters(iterations=1))


def test_signal_handler_escalates():
    token = CancellationToken()
    previous = install_signal_handlers(token)
    try:
        handler = signal.getsignal(signal.SIGINT)
        handler(signal.SIGINT, None)
        assert token.soft and not token.hard
        with pytest.raises(TrainingInterrupted):
            handler(signal.SIGINT, None)
        assert token.hard
    finally:
        signal.signal(signal.SIGINT, previous)


def test_sleep_on_high_load(monkeypatch):
    loads = iter([100.0, 100.0, 0.0])
    sleeps = []
    monkeypatch.setattr(train_module.os, "getloadavg", lambda: (next(loads), 0.0, 0.0), raising=False)
    monkeypatch.setattr(train_module.time, "sleep", sleeps.append)

    sleep_on_high_load(ncpu=1, interval=5)

    assert sleeps == [5, 5]


def test_log_file_is_rewritten(tmp_path, hand_case):
    map, chain, params = hand_case
    log = tmp_path / "errors.log"
    log.write_text("0.5\n0.4\n")

    Trainer(map, [chain], params.model_copy(update={"log_file": str(log), "iterations": 3})).run()

    assert len(log.read_text().splitlines()) == 3


def test_undirected_contextual_training_uses_child_slots(small_map, chain):
    to_undirected([chain])
    set_node_depth([chain])
    set_weight_values([chain], 0.5, 0.5, 0.0, 0.0)
    sort_nodes_by_depth([chain])
    map = small_map(dim=chain.dimension)
    params = TrainingParameters(iterations=2, alpha=0.5, radius=1.5, contextual=True, undirected=True)

    trainer = Trainer(map, [chain], params)
    result = trainer.run()

    assert trainer.contextual
    assert result.state == RunState.CONVERGED
    assert len(result.errors) == 2
    root, leaf = chain.nodes
    assert tuple(root.points[1:3]) == (leaf.x, leaf.y)
    assert tuple(leaf.points[1:3]) == (root.x, root.y)


def test_random_graph_order_is_reproducible(small_map):
    runs = []
    for _ in range(2):
        graphs = [
            build_graph([0.0, 0.25, 0.5, 0.75, 1.0], [[1, 2], [3, 4], [], [], []]),
            build_graph([1.0, 0.0], [[1], []]),
            build_graph([0.6], [[]]),
        ]
        set_node_depth(graphs)
        set_weight_values(graphs, 1.0, 0.5, 0.0, 0.0)
        sort_nodes_by_depth(graphs)
        map = small_map(dim=graphs[0].dimension)
        params = TrainingParameters(iterations=3, alpha=0.5, radius=1.5, graph_order="random", seed=11)
        result = Trainer(map, graphs, params).run()
        runs.append((map.codes, result.errors))

    np.testing.assert_array_equal(runs[0][0], runs[1][0])
    assert runs[0][1] == runs[1][1]


def test_train_map_with_undirected_links(tmp_path, monkeypatch, hand_case):
    monkeypatch.chdir(tmp_path)
    map, chain, params = hand_case

    params = params.model_copy(update={"undirected": True, "node_order": "random", "seed": 3})

    result = train_map(map, [chain], params)

    assert result.state == RunState.CONVERGED
    assert chain.nodes[1].children == [0]
    assert (tmp_path / result.output_file).exists()


def test_train_map_binds_the_interrupt_signal(tmp_path, monkeypatch, hand_case):
    monkeypatch.chdir(tmp_path)
    map, chain, params = hand_case
    run = Trainer.run

    def interrupted_run(self):
        signal.raise_signal(signal.SIGINT)
        return run(self)

    monkeypatch.setattr(Trainer, "run", interrupted_run)
    previous = signal.getsignal(signal.SIGINT)

    result = train_map(map, [chain], params, handle_signals=True)

    assert result.state == RunState.INTERRUPTED
    assert result.output_file == f"interrupted{os.getpid()}.net"
    assert signal.getsignal(signal.SIGINT) is previous


def test_signal_handlers_need_the_main_thread(tmp_path, monkeypatch, hand_case):
    monkeypatch.chdir(tmp_path)
    map, chain, params = hand_case
    raised = []

    def worker():
        try:
            train_map(map, [chain], params, handle_signals=True)
        except ConfigurationError as e:
            raised.append(e)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert len(raised) == 1
    assert map.iter == 0
