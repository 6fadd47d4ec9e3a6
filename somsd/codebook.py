"""The map: a grid of codebook vectors and the distances on that grid."""

import enum

import numpy as np
import numpy.typing as npt


class Topology(enum.IntEnum):
    RECT = 1
    HEXA = 2
    OCT = 3
    VQ = 4

    @classmethod
    def parse(cls, text: str) -> "Topology":
        name = text.strip().lower()
        if name.startswith("hex"):
            return cls.HEXA
        if name.startswith("rect"):
            return cls.RECT
        if name.startswith("oct"):
            return cls.OCT
        if name.startswith("vq") or name.startswith("none"):
            return cls.VQ
        raise ValueError(f"Unknown topology '{text}'")

    @property
    def file_name(self) -> str:
        return {
            Topology.RECT: "rectangular",
            Topology.HEXA: "hexagonal",
            Topology.OCT: "octagonal",
            Topology.VQ: "vq",
        }[self]


class Neighborhood(enum.IntEnum):
    BUBBLE = 1
    GAUSSIAN = 2
    NONE = 3

    @classmethod
    def parse(cls, text: str) -> "Neighborhood":
        name = text.strip().lower()
        if name.startswith("bub"):
            return cls.BUBBLE
        if name.startswith("gaus"):
            return cls.GAUSSIAN
        if name.startswith("none"):
            return cls.NONE
        raise ValueError(f"Unknown neighborhood '{text}'")

    @property
    def file_name(self) -> str:
        return self.name.lower()


def hexa_distance(bx, by, tx, ty):
    """Squared distance between two cells of a hexagonal grid.

    Odd columns are shifted by half a cell, so an odd ``dx`` moves ``dy`` by
    0.5 towards or away from the target depending on the target's column.
    Works elementwise on arrays.
    """
    dx = np.asarray(bx) - np.asarray(tx)
    dy = np.asarray(by, dtype=np.float64) - np.asarray(ty, dtype=np.float64)
    odd = (dx % 2) != 0
    tx_odd = (np.asarray(tx) % 2) != 0
    dy = np.where(odd & tx_odd, dy + 0.5, np.where(odd, dy - 0.5, dy))
    return dy * dy + 0.75 * dx * dx


def rect_distance(bx, by, tx, ty):
    dx = np.asarray(bx, dtype=np.float64) - np.asarray(tx, dtype=np.float64)
    dy = np.asarray(by, dtype=np.float64) - np.asarray(ty, dtype=np.float64)
    return dx * dx + dy * dy


def oct_distance(bx, by, tx, ty):
    dx = np.abs(np.asarray(bx, dtype=np.float64) - np.asarray(tx, dtype=np.float64))
    dy = np.abs(np.asarray(by, dtype=np.float64) - np.asarray(ty, dtype=np.float64))
    d = np.maximum(dx, dy)
    return d * d


def grid_distance(topology: Topology, bx, by, tx, ty):
    match topology:
        case Topology.RECT:
            return rect_distance(bx, by, tx, ty)
        case Topology.OCT:
            return oct_distance(bx, by, tx, ty)
        case _:
            return hexa_distance(bx, by, tx, ty)


class Map:
    """Codebook vectors laid out row-major on an ``xdim`` x ``ydim`` grid.

    Codebook ``n`` sits at ``(x, y) = (n % xdim, n // xdim)``. For VQ maps
    ``a[n]`` and ``b[n]`` cache the squared norms of the child and parent
    one-hot regions of codebook ``n``.
    """

    def __init__(
        self,
        xdim: int,
        ydim: int,
        dim: int,
        topology: Topology = Topology.HEXA,
        neighborhood: Neighborhood = Neighborhood.GAUSSIAN,
        codes: npt.NDArray[np.float64] | None = None,
        iteration: int = 0,
    ):
        self.xdim = xdim
        self.ydim = ydim
        self.dim = dim
        self.topology = topology
        self.neighborhood = neighborhood
        self.iter = iteration
        noc = xdim * ydim
        if codes is None:
            codes = np.zeros((noc, dim), dtype=np.float64)
        self.codes = np.asarray(codes, dtype=np.float64)
        idx = np.arange(noc)
        self.cx = idx % xdim if xdim else idx
        self.cy = idx // xdim if xdim else idx
        self.labels: list[str | None] = [None] * noc
        self.a = np.zeros(noc, dtype=np.float64)
        self.b = np.zeros(noc, dtype=np.float64)

    @property
    def noc(self) -> int:
        return self.xdim * self.ydim

    @property
    def is_vq(self) -> bool:
        return self.topology == Topology.VQ

    def codeno(self, x: int, y: int) -> int:
        return y * self.xdim + x

    def coordinates(self, codeno: int) -> tuple[int, int]:
        return int(self.cx[codeno]), int(self.cy[codeno])
