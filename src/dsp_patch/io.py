"""Graph persistence: a flat record schema and its binary encoding.

Layout (little endian)::

    b"DSPG"  u16 version
    str name
    u32 node count, then per node: str pkg, str name, u32 delay index
    u32 connection count, then per connection: u32 src, src_port, dst, dst_port

Strings are a ``u32`` byte length followed by UTF-8. Node indices refer to the
node table, which lists input terminals, interior nodes and output terminals
in graph order. The delay index is 1-based; 0 means the node is not a delay.
"""

from __future__ import annotations

import logging
import os
import struct
from pathlib import Path
from typing import BinaryIO

from pydantic import BaseModel, Field

from dsp_patch.errors import GraphFormatError, InvalidConnectionError
from dsp_patch.factory import DELAY_NAME, RUNTIME_PKG, SignatureResolver, make_node
from dsp_patch.models import Graph, Node

logger = logging.getLogger(__name__)

MAGIC = b"DSPG"
FORMAT_VERSION = 1
GRAPH_SUFFIX = ".dsp"

_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_CONN = struct.Struct("<4I")


# ---------------------------------------------------------------------------
# Record schema
# ---------------------------------------------------------------------------


class NodeRecord(BaseModel):
    pkg: str = ""
    name: str
    delay_write: int = Field(default=0, ge=0)  # 1-based node index, 0 = none


class ConnectionRecord(BaseModel):
    src: int = Field(ge=0)
    src_port: int = Field(ge=0)
    dst: int = Field(ge=0)
    dst_port: int = Field(ge=0)


class GraphRecord(BaseModel):
    name: str
    nodes: list[NodeRecord] = []
    conns: list[ConnectionRecord] = []


def graph_to_record(graph: Graph) -> GraphRecord:
    """Flatten a graph into its persisted form."""
    table = graph.all_nodes()
    index = {id(n): i for i, n in enumerate(table)}

    def lookup(node: Node) -> int:
        try:
            return index[id(node)]
        except KeyError:
            raise GraphFormatError(
                f"node '{node.name}' is referenced but not part of graph '{graph.name}'"
            ) from None

    nodes = []
    for n in table:
        delay = lookup(n.delay_write) + 1 if n.delay_write is not None else 0
        nodes.append(NodeRecord(pkg=n.pkg, name=n.name, delay_write=delay))

    conns = []
    for i, n in enumerate(table):
        for src_port, p in enumerate(n.out_ports):
            for c in p.conns:
                dst = c.dst.node
                conns.append(
                    ConnectionRecord(
                        src=i,
                        src_port=src_port,
                        dst=lookup(dst),
                        dst_port=dst.in_port_pos(c.dst),
                    )
                )
    return GraphRecord(name=graph.name, nodes=nodes, conns=conns)


def _is_delay_identity(record: NodeRecord) -> bool:
    return record.pkg == RUNTIME_PKG and record.name == DELAY_NAME


def record_to_graph(record: GraphRecord, resolver: SignatureResolver | None = None) -> Graph:
    """Rebuild a graph from its persisted form.

    Raises GraphFormatError for inconsistent records and UnknownNodeError for
    identities the resolver cannot turn into nodes.
    """
    count = len(record.nodes)
    nodes = [
        make_node(r.pkg, r.name, resolver, delay_write=r.delay_write == i + 1)
        for i, r in enumerate(record.nodes)
    ]

    for i, (r, n) in enumerate(zip(record.nodes, nodes)):
        if r.delay_write == 0:
            if _is_delay_identity(r):
                raise GraphFormatError(f"node {i}: delay has no delay index")
            continue
        if not _is_delay_identity(r):
            raise GraphFormatError(f"node {i}: '{r.name}' is not a delay but has a delay index")
        if r.delay_write > count:
            raise GraphFormatError(f"node {i}: delay index {r.delay_write} out of range")
        write = nodes[r.delay_write - 1]
        if not write.is_delay_write():
            raise GraphFormatError(f"node {i}: delay index {r.delay_write} is not a delay write")
        n.delay_write = write

    graph = Graph(name=record.name)
    for n in nodes:
        if n.is_inport():
            graph.in_ports.append(n)
        elif n.is_outport():
            graph.out_ports.append(n)
        else:
            graph.nodes.append(n)

    for k, c in enumerate(record.conns):
        if c.src >= count or c.dst >= count:
            raise GraphFormatError(f"connection {k}: node index out of range")
        src, dst = nodes[c.src], nodes[c.dst]
        if c.src_port >= len(src.out_ports):
            raise GraphFormatError(f"connection {k}: output port {c.src_port} out of range")
        if c.dst_port >= len(dst.in_ports):
            raise GraphFormatError(f"connection {k}: input port {c.dst_port} out of range")
        try:
            graph.connect(src.out_ports[c.src_port], dst.in_ports[c.dst_port])
        except InvalidConnectionError as e:
            raise GraphFormatError(f"connection {k}: {e}") from e

    return graph


# ---------------------------------------------------------------------------
# Binary encoding
# ---------------------------------------------------------------------------


def _pack_str(out: bytearray, s: str) -> None:
    data = s.encode("utf-8")
    out += _U32.pack(len(data))
    out += data


def encode_graph(graph: Graph) -> bytes:
    """Serialize a graph to bytes."""
    record = graph_to_record(graph)
    out = bytearray(MAGIC)
    out += _U16.pack(FORMAT_VERSION)
    _pack_str(out, record.name)
    out += _U32.pack(len(record.nodes))
    for n in record.nodes:
        _pack_str(out, n.pkg)
        _pack_str(out, n.name)
        out += _U32.pack(n.delay_write)
    out += _U32.pack(len(record.conns))
    for c in record.conns:
        out += _CONN.pack(c.src, c.src_port, c.dst, c.dst_port)
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def unpack(self, fmt: struct.Struct) -> tuple[int, ...]:
        try:
            values = fmt.unpack_from(self.data, self.pos)
        except struct.error:
            raise GraphFormatError("truncated graph data") from None
        self.pos += fmt.size
        return values

    def u32(self) -> int:
        return self.unpack(_U32)[0]

    def string(self) -> str:
        n = self.u32()
        if self.pos + n > len(self.data):
            raise GraphFormatError("truncated graph data")
        raw = self.data[self.pos : self.pos + n]
        self.pos += n
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise GraphFormatError(f"invalid string in graph data: {e}") from e


def decode_record(data: bytes) -> GraphRecord:
    """Parse bytes into a record without resolving any node."""
    if data[: len(MAGIC)] != MAGIC:
        raise GraphFormatError("not a graph file (bad magic)")
    reader = _Reader(data)
    reader.pos = len(MAGIC)
    (version,) = reader.unpack(_U16)
    if version != FORMAT_VERSION:
        raise GraphFormatError(f"unsupported graph format version {version}")

    name = reader.string()
    nodes = []
    for _ in range(reader.u32()):
        pkg = reader.string()
        node_name = reader.string()
        nodes.append(NodeRecord(pkg=pkg, name=node_name, delay_write=reader.u32()))
    conns = []
    for _ in range(reader.u32()):
        src, src_port, dst, dst_port = reader.unpack(_CONN)
        conns.append(ConnectionRecord(src=src, src_port=src_port, dst=dst, dst_port=dst_port))
    if reader.pos != len(data):
        raise GraphFormatError(f"{len(data) - reader.pos} trailing bytes after graph data")
    return GraphRecord(name=name, nodes=nodes, conns=conns)


def decode_graph(data: bytes, resolver: SignatureResolver | None = None) -> Graph:
    """Deserialize a graph from bytes."""
    return record_to_graph(decode_record(data), resolver)


def write_graph(stream: BinaryIO, graph: Graph) -> None:
    stream.write(encode_graph(graph))


def read_graph(stream: BinaryIO, resolver: SignatureResolver | None = None) -> Graph:
    return decode_graph(stream.read(), resolver)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def save_graph(graph: Graph, directory: str | Path = ".") -> Path:
    """Write ``graph`` to ``<directory>/<name>.dsp`` and return the path.

    Creates the directory if it doesn't exist.
    """
    out = Path(directory)
    out.mkdir(parents=True, exist_ok=True)
    path = out / graph.file_name()
    with path.open("wb") as f:
        write_graph(f, graph)
    logger.debug("saved graph %r to %s", graph.name, path)
    return path


def is_explicit_path(name: str | Path) -> bool:
    """True if ``name`` names a file rather than a graph."""
    text = str(name)
    return isinstance(name, Path) or os.sep in text or "/" in text or text.endswith(GRAPH_SUFFIX)


def graph_path(name: str | Path, directory: str | Path = ".") -> Path:
    """Where ``load_graph`` looks for ``name``."""
    text = str(name)
    if is_explicit_path(name):
        return Path(directory) / text
    return Path(directory) / (text.lower() + GRAPH_SUFFIX)


def load_graph(
    name: str | Path,
    directory: str | Path = ".",
    resolver: SignatureResolver | None = None,
) -> Graph:
    """Load a graph by name or path.

    A bare name is looked up as ``<directory>/<name>.dsp``; if that file does
    not exist a new empty graph with that name is returned. An explicit path
    (one containing a separator or ending in ``.dsp``) must exist.
    """
    path = graph_path(name, directory)
    try:
        f = path.open("rb")
    except FileNotFoundError:
        if is_explicit_path(name):
            raise
        logger.debug("no graph file %s, starting new graph %r", path, str(name))
        return Graph(name=str(name))
    with f:
        graph = read_graph(f, resolver)
    logger.debug("loaded graph %r from %s", graph.name, path)
    return graph
