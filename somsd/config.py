"""Map and training parameters.

Parameter models validate their own fields; ``check_parameters`` fills in
the defaults that depend on the map and the data and collects advisories.
"""

from __future__ import annotations

import enum
import logging
import math
import os
from typing import Any, Literal

import numpy as np
from pydantic import BaseModel, Field, field_validator

from somsd.codebook import Map, Neighborhood, Topology
from somsd.diagnostics import Diagnostics
from somsd.graph import Graph

logger = logging.getLogger(__name__)

EPSILON = 1e-6


class AlphaType(enum.IntEnum):
    SIGMOIDAL = 1
    LINEAR = 2
    EXPONENTIAL = 3
    CONSTANT = 4

    @classmethod
    def parse(cls, text: str) -> AlphaType:
        name = text.strip().lower()
        for prefix, value in (
            ("sigm", cls.SIGMOIDAL),
            ("lin", cls.LINEAR),
            ("exp", cls.EXPONENTIAL),
            ("const", cls.CONSTANT),
        ):
            if name.startswith(prefix):
                return value
        raise ValueError(f"Unknown alpha type '{text}'")


class InitMode(enum.IntEnum):
    RANDOM = 1
    LINEAR = 2

    @classmethod
    def parse(cls, text: str) -> InitMode:
        name = text.strip().lower()
        if name.startswith("rand"):
            return cls.RANDOM
        if name.startswith("lin"):
            return cls.LINEAR
        raise ValueError(f"Unknown initialization mode '{text}'")


def _parse_enum(enum_type, v):
    if isinstance(v, str):
        # map file headers store the numeric value
        if v.strip().isdigit():
            return enum_type(int(v))
        return enum_type.parse(v)
    return v


class MapSpec(BaseModel):
    """Shape and behaviour of a map to be initialized."""

    xdim: int = Field(default=10, ge=0)
    ydim: int = Field(default=10, ge=0)
    topology: Topology = Topology.HEXA
    neighborhood: Neighborhood = Neighborhood.GAUSSIAN
    init_mode: InitMode = InitMode.RANDOM
    seed: int | None = None

    @field_validator("topology", mode="before")
    @classmethod
    def parse_topology(cls, v: Any) -> Any:
        return _parse_enum(Topology, v)

    @field_validator("neighborhood", mode="before")
    @classmethod
    def parse_neighborhood(cls, v: Any) -> Any:
        return _parse_enum(Neighborhood, v)

    @field_validator("init_mode", mode="before")
    @classmethod
    def parse_init_mode(cls, v: Any) -> Any:
        return _parse_enum(InitMode, v)


class TrainingParameters(BaseModel):
    """Hyperparameters and file locations of a training run."""

    iterations: int = Field(default=0, ge=0)
    alpha: float = 0.0
    radius: float = 0.0
    mu1: float = Field(default=0.0, ge=0)
    mu2: float = Field(default=0.0, ge=0)
    mu3: float = Field(default=0.0, ge=0)
    mu4: float = Field(default=0.0, ge=0)
    alpha_type: AlphaType = AlphaType.SIGMOIDAL
    contextual: bool = False
    undirected: bool = False
    node_order: Literal["depth", "random"] = "depth"
    graph_order: Literal["fixed", "random"] = "fixed"
    seed: int | None = None
    snapshot_interval: int = Field(default=0, ge=0)
    snapshot_file: str | None = None
    snapshot_command: str | None = None
    log_file: str | None = None
    output_file: str | None = None
    nice: bool = False
    ncpu: int = Field(default=1, ge=0)
    data_file: str | None = None
    valid_file: str | None = None

    @field_validator("alpha_type", mode="before")
    @classmethod
    def parse_alpha_type(cls, v: Any) -> Any:
        return _parse_enum(AlphaType, v)

    @property
    def mu(self) -> tuple[float, float, float, float]:
        return (self.mu1, self.mu2, self.mu3, self.mu4)

    @classmethod
    def from_map_header(cls, header: dict[str, str], **overrides: Any) -> TrainingParameters:
        """Recover the parameters echoed into a map file header."""
        keys = {
            "trainiter": "iterations",
            "trainalpha": "alpha",
            "trainradius": "radius",
            "traindata": "data_file",
            "trainvalid": "valid_file",
            "trainmu1": "mu1",
            "trainmu2": "mu2",
            "trainmu3": "mu3",
            "trainmu4": "mu4",
            "trainalphatype": "alpha_type",
        }
        values: dict[str, Any] = {}
        for key, value in header.items():
            field = keys.get(key.lower())
            if field is not None and value not in ("", "(null)"):
                values[field] = value
        values.update(overrides)
        return cls(**values)


def compute_mu_values(map: Map, graphs: list[Graph], diagnostics: Diagnostics) -> tuple[float, float, float, float]:
    """Weights that give the four node segments a comparable influence.

    Label and target variances are measured on the data; state coordinates
    are assumed to spread evenly around the centre of the map.
    """
    if map.dim == 0 or not graphs:
        return (0.0, 0.0, 0.0, 0.0)
    if map.is_vq:
        diagnostics.message("Suggested mu values are approximate for VQ maps.")

    first = graphs[0]
    ldim = first.ldim
    cend = ldim + 2 * first.fan_out
    pend = cend + 2 * first.fan_in
    tend = pend + first.tdim
    if not map.is_vq and map.dim != tend:
        diagnostics.error("Dimension of codebooks != dimension of train-set vectors")
        return (0.0, 0.0, 0.0, 0.0)

    points = np.array([n.points[:tend] for g in graphs for n in g.nodes])
    sigma = np.zeros(tend)
    if len(points):
        sigma[:ldim] = points[:, :ldim].var(axis=0)
        sigma[pend:tend] = points[:, pend:tend].var(axis=0)
    sigma[ldim:pend:2] = ((map.xdim - 1) / 2.0 / 2) ** 2
    sigma[ldim + 1 : pend : 2] = ((map.ydim - 1) / 2.0 / 2) ** 2

    d = [sigma[:ldim].sum(), sigma[ldim:cend].sum(), sigma[cend:pend].sum(), sigma[pend:tend].sum()]
    sizes = [ldim, cend - ldim, pend - cend, tend - pend]
    ref = next((i for i, size in enumerate(sizes) if size > 0), None)
    if ref is None:
        return (0.0, 0.0, 0.0, 0.0)
    x = [0.0] * 4
    x[ref] = 1.0
    for i in range(ref + 1, 4):
        x[i] = d[ref] / d[i] if d[i] > 0.0 else 0.0
    k = 1.0 / sum(x)
    return tuple(float(k * v) for v in x)  # type: ignore[return-value]


def suggest_mu(params: TrainingParameters, map: Map, graphs: list[Graph], diagnostics: Diagnostics) -> TrainingParameters:
    suggested = compute_mu_values(map, graphs, diagnostics)
    text = " ".join(f"mu{i + 1}={v:.9g}" for i, v in enumerate(suggested) if v > 0.0)
    if math.isclose(sum(params.mu), 0.0, abs_tol=4 * EPSILON):
        diagnostics.message(f"Will use: {text}")
        return params.model_copy(
            update=dict(zip(("mu1", "mu2", "mu3", "mu4"), suggested))
        )
    if any(not math.isclose(a, b, rel_tol=0.01, abs_tol=EPSILON) for a, b in zip(params.mu, suggested)):
        diagnostics.message("Caution: The mu-values are not optimal.")
        diagnostics.message(f"Suggesting use of: {text}")
    return params


def check_parameters(
    params: TrainingParameters,
    map: Map | None,
    graphs: list[Graph],
    diagnostics: Diagnostics,
) -> TrainingParameters:
    """Apply defaults and report questionable settings.

    Errors are collected in ``diagnostics``; the caller decides when to
    raise them.
    """
    logger.info("Checking parameters")
    if map is None or map.noc == 0:
        diagnostics.error("No Map, or Map is empty.")
    if not graphs:
        diagnostics.error("No training data.")
    update: dict[str, Any] = {}

    if params.output_file is None:
        update["output_file"] = "trained.net"
        diagnostics.message("Will save trained network to file 'trained.net'.")
    if params.iterations == 0:
        update["iterations"] = 64
        diagnostics.message("Number of training iterations not specified or zero, defaults to 64.")
    if params.alpha == 0.0:
        diagnostics.message("Learning rate is zero.")
    elif params.alpha < 0.0:
        diagnostics.message("Learning rate is negative!")
    elif params.alpha > 2.0:
        diagnostics.message("Learning rate is likely to be too large. Suggested values are within [0;1].")
    if map is not None and params.radius == 0 and not map.is_vq:
        radius = 1.0 + math.sqrt(map.xdim**2 + map.ydim**2) / 9.0
        update["radius"] = radius
        diagnostics.message(f"Neighborhood radius not specified or zero, defaults to {radius:g}.")
    if params.ncpu == 0:
        update["ncpu"] = os.cpu_count() or 1
    if not params.log_file:
        update["log_file"] = "somsd.log"
    if params.snapshot_interval > 0 and params.snapshot_file is None and params.snapshot_command is None:
        update["snapshot_file"] = "snapshot.net"
        diagnostics.message("Will save snapshots to file 'snapshot.net'.")
    elif params.snapshot_interval == 0 and params.snapshot_file is not None:
        update["snapshot_interval"] = 1
        diagnostics.message("Will save a snapshot at every iteration.")

    params = params.model_copy(update=update)
    if map is not None and graphs:
        params = suggest_mu(params, map, graphs, diagnostics)
    diagnostics.flush(logger)
    return params
