"""Reading and writing of graph data files.

A data file consists of a header of ``key=value`` lines followed by graphs.
Each graph starts with a line ``graph`` (optionally ``graph:name``) and
lists one node per line, its fields in the order given by ``format``. A
header may reappear between graphs to change the dimensions of the graphs
that follow. With ``byteorder`` set, the node records following a ``graph``
line are binary: a uint32 node count, float64 vectors, int32 numbers and
links, and labels stored as uint32 length plus bytes.
"""

import logging
import re
from dataclasses import dataclass, field

from somsd.data import LabelRegistry
from somsd.depth import set_node_depth
from somsd.diagnostics import Diagnostics
from somsd.errors import DataFormatError
from somsd.fileio.reader import (
    BIG_ENDIAN,
    LITTLE_ENDIAN,
    ByteReader,
    format_value,
    get_file_option,
    open_for_writing,
    read_file_bytes,
)
from somsd.graph import Graph, Node

logger = logging.getLogger(__name__)

FIELDS = {
    "nodelabel": "nodelabel",
    "childstate": "childstate",
    "parentstate": "parentstate",
    "target": "target",
    "noden": "nodenumber",
    "depth": "depth",
    "links": "links",
    "label": "label",
    "state": "state",
}
DEFAULT_FORMAT = ["nodelabel", "childstate", "links", "label"]
SAVE_FORMAT = ["nodenumber", "nodelabel", "target", "links", "label"]


@dataclass
class DataHeader:
    ldim: int = 0
    tdim: int = 0
    fan_out: int = 0
    fan_in: int = 0
    byteorder: int = 0
    fields: list[str] = field(default_factory=lambda: list(DEFAULT_FORMAT))

    def validate(self):
        errors = []
        if self.byteorder not in (0, LITTLE_ENDIAN, BIG_ENDIAN):
            errors.append("Invalid byteorder specified in file!")
        if self.ldim + self.tdim + self.fan_out + self.fan_in == 0:
            errors.append("Overall dimension of data is zero!")
        if self.ldim > 0 and "nodelabel" not in self.fields:
            errors.append("Dimension of node label is non-zero but no labels are given")
        if self.tdim > 0 and "target" not in self.fields:
            errors.append("Dimension of target value is non-zero but no targets are given")
        if self.fan_in > 0 and "links" not in self.fields:
            errors.append("FanIn must be zero when undirected links are specified")
        if "state" in self.fields and ("childstate" in self.fields or "parentstate" in self.fields):
            errors.append(
                "Both directed and undirected links are specified. This is currently not supported."
            )
        if errors:
            raise DataFormatError("; ".join(errors))


def parse_format(text: str) -> list[str]:
    fields = []
    for token in re.split(r"[ ,:;+]+", text.strip()):
        if not token:
            continue
        name = next(
            (canonical for prefix, canonical in FIELDS.items() if token.lower().startswith(prefix)),
            None,
        )
        if name is None:
            raise DataFormatError(f"Unrecognized item '{token}' in format string found.")
        if name in fields:
            raise DataFormatError("Duplicate item in format string found.")
        fields.append(name)
    return fields


def _read_header(reader: ByteReader, line: str | None, header: DataHeader) -> str | None:
    int_keys = (
        ("dim_target", "tdim"),
        ("indegree", "fan_in"),
        ("outdegree", "fan_out"),
        ("dim_label", "ldim"),
        ("byteorder", "byteorder"),
    )
    while line is not None:
        text = line.strip()
        recognized = 0
        for key, attr in int_keys:
            value = get_file_option(text, key)
            if value is not None:
                try:
                    setattr(header, attr, int(value))
                except ValueError:
                    raise reader.error(f"Invalid value '{value}' for '{key}'.") from None
                recognized += 1
        value = get_file_option(text, "format")
        if value is not None:
            header.fields = parse_format(value)
            recognized += 1
        if text.startswith("graph"):
            break
        if not recognized and text and not text.startswith("#"):
            raise reader.error("Unrecognized keyword found in header.")
        line = reader.readline()
    header.validate()
    reader.byteorder = header.byteorder
    return line


class _Tokens:
    def __init__(self, reader: ByteReader, line: str):
        self.reader = reader
        self.tokens = line.split()
        self.pos = 0

    def next(self) -> str:
        if self.pos >= len(self.tokens):
            raise self.reader.error("File seems corrupted or does not contain expected data.")
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def floats(self, n: int) -> list[float]:
        try:
            return [float(self.next()) for _ in range(n)]
        except ValueError:
            raise self.reader.error("File seems corrupted or does not contain expected data.") from None

    def integer(self) -> int:
        try:
            return int(self.next())
        except ValueError:
            raise self.reader.error("File seems corrupted or does not contain expected data.") from None

    def link(self) -> int:
        token = self.next()
        return int(token) if token[0].isdigit() else -1

    def word(self) -> str | None:
        if self.pos >= len(self.tokens):
            return None
        return self.next()

    def check_consumed(self):
        if self.pos < len(self.tokens):
            raise self.reader.error("Unexpected trailing data.")


def _read_text_node(reader: ByteReader, line: str, graph: Graph, header: DataHeader, labels: LabelRegistry):
    node = graph.new_node()
    links: list[int] = [-1] * graph.fan_out
    tokens = _Tokens(reader, line)
    for name in header.fields:
        match name:
            case "nodelabel":
                node.points[: graph.ldim] = tokens.floats(graph.ldim)
            case "childstate":
                node.points[graph.child_offset : graph.parent_offset] = tokens.floats(2 * graph.fan_out)
            case "parentstate":
                node.points[graph.parent_offset : graph.target_offset] = tokens.floats(2 * graph.fan_in)
            case "target":
                node.points[graph.target_offset :] = tokens.floats(graph.tdim)
            case "nodenumber":
                node.nnum = tokens.integer()
            case "depth":
                node.depth = tokens.integer()
            case "links":
                links = [tokens.link() for _ in range(graph.fan_out)]
            case "label":
                node.label = labels.add(tokens.word())
    tokens.check_consumed()
    return node, links


def _read_binary_node(reader: ByteReader, graph: Graph, header: DataHeader, labels: LabelRegistry):
    node = graph.new_node()
    links: list[int] = [-1] * graph.fan_out
    for name in header.fields:
        match name:
            case "nodelabel":
                node.points[: graph.ldim] = reader.read_array("f8", graph.ldim)
            case "childstate":
                node.points[graph.child_offset : graph.parent_offset] = reader.read_array("f8", 2 * graph.fan_out)
            case "parentstate":
                node.points[graph.parent_offset : graph.target_offset] = reader.read_array("f8", 2 * graph.fan_in)
            case "target":
                node.points[graph.target_offset :] = reader.read_array("f8", graph.tdim)
            case "nodenumber":
                node.nnum = int(reader.read_array("i4", 1)[0])
            case "depth":
                node.depth = int(reader.read_array("i4", 1)[0])
            case "links":
                links = [int(v) for v in reader.read_array("i4", graph.fan_out)]
            case "label":
                node.label = labels.add(reader.read_label())
    return node, links


def _read_graph(
    reader: ByteReader,
    line: str,
    header: DataHeader,
    labels: LabelRegistry,
    diagnostics: Diagnostics,
    gnum: int,
) -> Graph:
    name = None
    if ":" in line:
        name = line.split(":", 1)[1].strip() or None
    graph = Graph(
        ldim=header.ldim,
        fan_out=header.fan_out,
        fan_in=header.fan_in,
        tdim=header.tdim,
        name=name,
        gnum=gnum,
    )

    records: list[tuple[Node, list[int]]] = []
    if header.byteorder:
        for _ in range(reader.read_uint()):
            records.append(_read_binary_node(reader, graph, header, labels))
    else:
        while True:
            line = reader.peek_line()
            if line is None:
                break
            text = line.strip()
            if text and text[0].isalpha():
                break
            reader.readline()
            if not text or text.startswith("#"):
                continue
            records.append(_read_text_node(reader, text, graph, header, labels))

    has_numbers = "nodenumber" in header.fields
    for i, (node, _) in enumerate(records):
        if not has_numbers:
            node.nnum = i
    nodes = [node for node, _ in records]
    if nodes and max(n.nnum for n in nodes) + 1 != len(nodes):
        raise reader.error("Inconsistency with node numbers.")
    placed = Graph.from_nodes(
        nodes,
        ldim=graph.ldim,
        fan_out=graph.fan_out,
        fan_in=graph.fan_in,
        tdim=graph.tdim,
        name=graph.name,
        gnum=gnum,
    )
    if "links" in header.fields:
        links = [[] for _ in nodes]
        for node, node_links in records:
            links[node.nnum] = node_links
        placed.link_nodes(links, diagnostics)
    return placed


def load_data(path, labels: LabelRegistry | None = None, diagnostics: Diagnostics | None = None) -> list[Graph]:
    """Read all graphs from ``path`` and assign node depths."""
    if labels is None:
        labels = LabelRegistry()
    if diagnostics is None:
        diagnostics = Diagnostics()
    logger.info("Reading data from %s", path)
    reader = ByteReader(read_file_bytes(path), str(path))
    header = DataHeader()
    line = _read_header(reader, reader.readline(), header)
    if line is None:
        raise DataFormatError("This doesn't seem to be a valid data file.")

    graphs: list[Graph] = []
    while line is not None:
        graphs.append(_read_graph(reader, line, header, labels, diagnostics, len(graphs)))
        line = _read_header(reader, reader.readline(), header)
    diagnostics.flush(logger)

    set_node_depth(graphs)
    logger.info("Read %d graphs, %d nodes", len(graphs), sum(g.numnodes for g in graphs))
    return graphs


def save_data(path, graphs: list[Graph], labels: LabelRegistry | None = None):
    """Write graphs in the textual format understood by :func:`load_data`."""
    lines = ["format=" + ",".join(SAVE_FORMAT)]
    current: dict[str, int] = {}
    for graph in graphs:
        for key, value in (
            ("dim_label", graph.ldim),
            ("dim_target", graph.tdim),
            ("outdegree", graph.fan_out),
            ("indegree", graph.fan_in),
        ):
            if current.get(key) != value:
                current[key] = value
                lines.append(f"{key}={value}")
        lines.append(f"graph:{graph.name}" if graph.name else "graph")
        for node in graph.nodes:
            fields = [str(node.nnum)]
            fields += [format_value(v) for v in node.points[: graph.ldim]]
            fields += [format_value(v) for v in node.points[graph.target_offset :]]
            fields += ["-" if c is None else str(c) for c in node.children]
            label = labels.get(node.label) if labels is not None else None
            if label is not None:
                fields.append(label)
            lines.append(" ".join(fields))
    with open_for_writing(path) as f:
        f.write(("\n".join(lines) + "\n").encode("utf-8"))
    logger.info("Saved %d graphs to %s", len(graphs), path)
