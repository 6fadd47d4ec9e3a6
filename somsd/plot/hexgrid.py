"""Static drawing of a map as a grid of hexagons, coloured by winner class."""

import math

import matplotlib.pyplot as plt
from matplotlib.patches import RegularPolygon

from somsd.analysis import ClassMap, HitMap
from somsd.codebook import Map
from somsd.data import LabelRegistry


def cell_center(x: int, y: int) -> tuple[float, float]:
    # odd columns are offset by half a cell, as in hexa_distance
    return x * math.sqrt(3) / 2, y - 0.5 * (x % 2)


def draw_map(map: Map, hits: HitMap, classes: ClassMap, labels: LabelRegistry, path=None):
    """Draw activated neurons filled by class, inactive ones as outlines."""
    fig, ax = plt.subplots(figsize=(max(4, map.xdim * 0.6), max(4, map.ydim * 0.6)))
    cmap = plt.cm.tab20  # type: ignore
    for n in range(map.noc):
        x, y = map.coordinates(n)
        cx, cy = cell_center(x, y)
        winner = int(classes.winner_class[y, x])
        active = hits.activation[y, x] > 0
        ax.add_patch(
            RegularPolygon(
                (cx, -cy),
                numVertices=6,
                radius=0.55,
                orientation=math.pi / 6,
                facecolor=cmap(winner % 20) if winner else ("lightgray" if active else "white"),
                edgecolor="black",
                linewidth=0.5,
            )
        )
        if winner:
            ax.text(cx, -cy, labels.get(winner), ha="center", va="center", fontsize=6)
    ax.set_xlim(-1, map.xdim)
    ax.set_ylim(-map.ydim, 1)
    ax.set_aspect("equal")
    ax.axis("off")
    fig.tight_layout()
    if path is not None:
        fig.savefig(path, dpi=150)
    return fig
