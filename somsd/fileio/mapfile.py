import logging
import subprocess

import numpy as np

from somsd.codebook import Map, Neighborhood, Topology
from somsd.config import TrainingParameters
from somsd.errors import DataFormatError
from somsd.fileio.reader import (
    BIG_ENDIAN,
    LITTLE_ENDIAN,
    ByteReader,
    dtype_prefix,
    format_value,
    get_file_option,
    native_byteorder,
    open_for_writing,
    read_file_bytes,
)

logger = logging.getLogger(__name__)

MAP_KEYS = ("iteration", "dim", "xdim", "ydim", "byteorder", "neighborhood", "topology")
TRAIN_KEYS = (
    "mu1",
    "mu2",
    "mu3",
    "mu4",
    "alpha",
    "beta",
    "iter",
    "radius",
    "data",
    "valid",
    "supervised",
    "alphatype",
    "kernel",
    "batchmode",
    "momentum",
)


def _header_lines(map: Map, params: TrainingParameters | None, binary: bool) -> list[str]:
    lines = [
        "",
        "#Network properties:",
        f"Iteration={map.iter}",
        f"Dim={map.dim}",
        f"Xdim={map.xdim}",
        f"Ydim={map.ydim}",
    ]
    if binary:
        lines.append(f"Byteorder={native_byteorder()}")
    lines.append(f"Neighborhood={map.neighborhood.file_name}")
    lines.append(f"Topology={map.topology.file_name}")
    if params is not None:
        lines += ["", "#Training parameters used:"]
        if params.iterations > 0:
            lines.append(f"TrainIter={params.iterations}")
        if params.alpha > 0.0:
            lines.append(f"TrainAlpha={params.alpha:.9f}")
        if params.radius > 0:
            lines.append(f"TrainRadius={params.radius:g}")
        if params.data_file is not None:
            lines.append(f"TrainData={params.data_file}")
        if params.valid_file is not None:
            lines.append(f"TrainValid={params.valid_file}")
        for i, mu in enumerate(params.mu, start=1):
            if mu > 0.0:
                lines.append(f"Trainmu{i}={mu:.9f}")
        lines.append(f"TrainAlphatype={int(params.alpha_type)}")
    lines += ["", "map"]
    return lines


def save_map(map: Map, path, params: TrainingParameters | None = None, binary: bool = True):
    """Write the map's header and codebooks, y outer and x inner."""
    logger.info("Saving codebook entries to %s", path)
    header = ("\n".join(_header_lines(map, params, binary)) + "\n").encode("utf-8")
    with open_for_writing(path) as f:
        f.write(header)
        native = dtype_prefix(native_byteorder()) + "f8"
        for n in range(map.noc):
            label = map.labels[n]
            if binary:
                f.write(map.codes[n].astype(native).tobytes())
                encoded = label.encode("utf-8") if label else b""
                f.write(np.array([len(encoded)], dtype=native[0] + "u4").tobytes())
                f.write(encoded)
            else:
                fields = [format_value(v) for v in map.codes[n]]
                if label:
                    fields.append(label)
                f.write((" ".join(fields) + "\n").encode("utf-8"))


def _read_header(reader: ByteReader) -> tuple[dict[str, str], bool]:
    header: dict[str, str] = {}
    line = reader.readline()
    while line is not None:
        text = line.strip()
        recognized = 0
        if text[:5].lower() == "train":
            for key in TRAIN_KEYS:
                value = get_file_option(text[5:], key)
                if value is not None:
                    header["train" + key] = value
                    recognized += 1
        elif text.startswith("map"):
            return header, True
        else:
            for key in MAP_KEYS:
                value = get_file_option(text, key)
                if value is not None:
                    header[key] = value
                    recognized += 1
        if not recognized and text and not text.startswith("#"):
            raise reader.error("Unrecognized keyword found in header.")
        line = reader.readline()
    return header, False


def _int_option(header: dict[str, str], key: str) -> int:
    try:
        return int(header.get(key, "0"))
    except ValueError:
        raise DataFormatError(f"Invalid value '{header[key]}' for '{key}'.") from None


def load_map(path) -> tuple[Map, dict[str, str]]:
    """Read a map file; returns the map and the raw header values."""
    logger.info("Reading codebook entries from %s", path)
    reader = ByteReader(read_file_bytes(path), str(path))
    header, found = _read_header(reader)

    errors = []
    byteorder = _int_option(header, "byteorder")
    if byteorder not in (0, LITTLE_ENDIAN, BIG_ENDIAN):
        errors.append("Invalid byteorder specified in file!")
    xdim, ydim, dim = (_int_option(header, k) for k in ("xdim", "ydim", "dim"))
    if xdim == 0 or ydim == 0:
        errors.append("Map dimension is zero!")
    if dim == 0:
        errors.append("Codebook dimension is zero!")
    if not found:
        errors.append("This doesn't seem to be a codebook file.")
    if errors:
        raise DataFormatError("; ".join(errors))

    try:
        topology = Topology.parse(header.get("topology", "hexagonal"))
        neighborhood = Neighborhood.parse(header.get("neighborhood", "gaussian"))
    except ValueError as e:
        raise DataFormatError(str(e)) from e
    map = Map(xdim, ydim, dim, topology, neighborhood, iteration=_int_option(header, "iteration"))

    reader.byteorder = byteorder
    if byteorder:
        for n in range(map.noc):
            map.codes[n] = reader.read_array("f8", dim)
            map.labels[n] = reader.read_label()
        if reader.data[reader.pos :].strip():
            raise reader.error("Unexpected trailing data.")
    else:
        n = 0
        line = reader.readline()
        while line is not None:
            tokens = line.split()
            if tokens:
                if n >= map.noc:
                    raise reader.error("Unexpected trailing data.")
                if len(tokens) < dim or len(tokens) > dim + 1:
                    raise reader.error("File seems corrupted or does not contain expected data.")
                try:
                    map.codes[n] = [float(t) for t in tokens[:dim]]
                except ValueError:
                    raise reader.error("File seems corrupted or does not contain expected data.") from None
                map.labels[n] = tokens[dim] if len(tokens) > dim else None
                n += 1
            line = reader.readline()
        if n < map.noc:
            raise reader.error("Unexpected end of file.")
    logger.info("Read %d codes", map.noc)
    return map, header


def save_snapshot(map: Map, params: TrainingParameters):
    if params.snapshot_file:
        save_map(map, params.snapshot_file, params, binary=True)
    if params.snapshot_command:
        result = subprocess.run(params.snapshot_command, shell=True)
        if result.returncode != 0:
            logger.warning(
                "Snapshot command '%s' exited with status %d",
                params.snapshot_command,
                result.returncode,
            )
