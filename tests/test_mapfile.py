"""Tests for reading and writing map files."""

import logging

import numpy as np
import pytest

from somsd.codebook import Neighborhood, Topology
from somsd.config import AlphaType, MapSpec, TrainingParameters
from somsd.errors import DataFormatError
from somsd.fileio.mapfile import load_map, save_map, save_snapshot
from somsd.initializer import initialize_map


@pytest.fixture
def trained_map(small_map):
    map = small_map(xdim=3, ydim=2, dim=4, topology=Topology.RECT, neighborhood=Neighborhood.BUBBLE)
    map.iter = 7
    map.labels[1] = "leaf"
    return map


def test_binary_round_trip_is_exact(tmp_path, trained_map):
    path = tmp_path / "map.net"

    save_map(trained_map, path)
    loaded, header = load_map(path)

    np.testing.assert_array_equal(loaded.codes, trained_map.codes)
    assert loaded.labels == [None, "leaf", None, None, None, None]
    assert (loaded.xdim, loaded.ydim, loaded.dim, loaded.iter) == (3, 2, 4, 7)
    assert loaded.topology == Topology.RECT
    assert loaded.neighborhood == Neighborhood.BUBBLE
    assert "byteorder" in header


def test_ascii_round_trip(tmp_path, trained_map):
    path = tmp_path / "map.txt"

    save_map(trained_map, path, binary=False)
    loaded, header = load_map(path)

    np.testing.assert_allclose(loaded.codes, trained_map.codes, rtol=1e-8)
    assert loaded.labels[1] == "leaf"
    assert "byteorder" not in header


def test_compressed_map(tmp_path, trained_map):
    path = tmp_path / "map.net.bz2"

    save_map(trained_map, path)
    loaded, _ = load_map(path)

    np.testing.assert_array_equal(loaded.codes, trained_map.codes)


def test_training_parameters_are_echoed(tmp_path, trained_map):
    path = tmp_path / "map.net"
    params = TrainingParameters(
        iterations=20,
        alpha=0.5,
        radius=3.0,
        mu1=0.75,
        mu2=0.25,
        alpha_type=AlphaType.LINEAR,
        data_file="train.dat",
    )

    save_map(trained_map, path, params)
    _, header = load_map(path)
    echoed = TrainingParameters.from_map_header(header)

    assert header["trainiter"] == "20"
    assert echoed.iterations == 20
    assert echoed.alpha == pytest.approx(0.5)
    assert echoed.radius == pytest.approx(3.0)
    assert echoed.mu == pytest.approx((0.75, 0.25, 0.0, 0.0))
    assert echoed.alpha_type == AlphaType.LINEAR
    assert echoed.data_file == "train.dat"


@pytest.mark.parametrize(
    "content, message",
    [
        ("Dim=3\nXdim=0\nYdim=2\nmap\n", "Map dimension is zero"),
        ("Dim=0\nXdim=1\nYdim=1\nmap\n", "Codebook dimension is zero"),
        ("Dim=1\nXdim=1\nYdim=1\n", "doesn't seem to be a codebook file"),
        ("Dim=1\nXdim=1\nYdim=1\nByteorder=99\nmap\n", "Invalid byteorder"),
        ("Colour=red\nmap\n", "Unrecognized keyword"),
        ("Dim=1\nXdim=1\nYdim=1\nTopology=triangle\nmap\n0.5\n", "Unknown topology"),
        ("Dim=2\nXdim=2\nYdim=1\nmap\n0.5 0.5\n", "Unexpected end of file"),
        ("Dim=2\nXdim=1\nYdim=1\nmap\n0.5\n", "corrupted"),
        ("Dim=1\nXdim=1\nYdim=1\nmap\n0.5\n0.7\n", "trailing data"),
    ],
)
def test_invalid_map_files(tmp_path, content, message):
    path = tmp_path / "bad.net"
    path.write_text(content)

    with pytest.raises(DataFormatError, match=message):
        load_map(path)


def test_snapshot_runs_the_command(tmp_path, trained_map, caplog):
    params = TrainingParameters(snapshot_file=str(tmp_path / "snap.net"), snapshot_command="exit 3")

    with caplog.at_level(logging.WARNING):
        save_snapshot(trained_map, params)

    assert (tmp_path / "snap.net").exists()
    assert "exited with status 3" in caplog.text


def test_initialized_map_survives_a_round_trip(tmp_path, tree):
    map = initialize_map([tree], MapSpec(xdim=4, ydim=3, seed=9))
    binary, text = tmp_path / "map.net", tmp_path / "map.txt"

    save_map(map, binary)
    save_map(map, text, binary=False)

    np.testing.assert_array_equal(load_map(binary)[0].codes, map.codes)
    np.testing.assert_allclose(load_map(text)[0].codes, map.codes, rtol=1e-8)
