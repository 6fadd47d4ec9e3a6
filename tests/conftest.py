"""Shared pytest fixtures and configuration."""

import os

import numpy as np
import pytest
from hypothesis import HealthCheck, settings

from somsd.codebook import Map, Neighborhood, Topology
from tests.helpers import build_graph

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=50,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)

settings.register_profile(
    "dev",
    max_examples=10,
    deadline=500,
)

settings.register_profile(
    "thorough",
    max_examples=1000,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))

# =============================================================================
# Graph Fixtures
# =============================================================================


@pytest.fixture
def chain():
    """Two nodes: a root (label 1.0) above a leaf (label 0.0)."""
    return build_graph([1.0, 0.0], [[1], []], fan_out=1)


@pytest.fixture
def tree():
    """Root 0 with children 1 and 2; node 1 has the leaves 3 and 4."""
    return build_graph(
        [0.0, 0.25, 0.5, 0.75, 1.0],
        [[1, 2], [3, 4], [], [], []],
    )


@pytest.fixture
def dag():
    """Diamond: 0 -> 1, 0 -> 2, 1 -> 3, 2 -> 3."""
    return build_graph(
        [0.0, 1.0, 2.0, 3.0],
        [[1, 2], [3], [3], []],
        fan_in=2,
    )


@pytest.fixture
def small_map():
    def make(xdim=3, ydim=2, dim=5, topology=Topology.HEXA, neighborhood=Neighborhood.GAUSSIAN, seed=0):
        rng = np.random.default_rng(seed)
        return Map(xdim, ydim, dim, topology, neighborhood, codes=rng.random((xdim * ydim, dim)))

    return make
