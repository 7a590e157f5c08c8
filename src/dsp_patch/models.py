"""In-memory graph model: Graph, Node, Port, Connection."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from dsp_patch.errors import InvalidConnectionError

# Binary operators available as built-in nodes.
OPERATORS = ("+", "-", "*", "/")

INPORT_PREFIX = "in-"
OUTPORT_PREFIX = "out-"

# Origin identity shared by both halves of a delay.
RUNTIME_PKG = "dsp_patch.runtime"
DELAY_NAME = "Delay"

# Decimal literals as written by format_number, plus inf and nan.
_CONST_RE = re.compile(r"[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf|nan)")


# ---------------------------------------------------------------------------
# Ports and connections
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Port:
    node: Node = field(repr=False)
    out: bool = False
    name: str = ""
    conns: list[Connection] = field(default_factory=list, repr=False)


@dataclass(eq=False)
class Connection:
    src: Port
    dst: Port


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Node:
    """A processing step.

    ``pkg``/``name`` is the origin identity; an empty ``pkg`` denotes a
    built-in primitive (terminal, operator, constant). ``delay_write`` is None
    for non-delay nodes, the node itself for a delay-write node, and the
    write node for a delay-read node sharing its state.
    """

    pkg: str = ""
    name: str = ""
    stateful: bool = False
    in_ports: list[Port] = field(default_factory=list, repr=False)
    out_ports: list[Port] = field(default_factory=list, repr=False)
    delay_write: Node | None = field(default=None, repr=False)

    def add_in_port(self, name: str = "") -> Port:
        port = Port(node=self, name=name)
        self.in_ports.append(port)
        return port

    def add_out_port(self, name: str = "") -> Port:
        port = Port(node=self, out=True, name=name)
        self.out_ports.append(port)
        return port

    def is_inport(self) -> bool:
        return self.pkg == "" and self.name.startswith(INPORT_PREFIX)

    def is_outport(self) -> bool:
        return self.pkg == "" and self.name.startswith(OUTPORT_PREFIX)

    def is_delay(self) -> bool:
        return self.pkg == RUNTIME_PKG and self.name == DELAY_NAME

    def is_delay_write(self) -> bool:
        return self.delay_write is self

    def is_operator(self) -> bool:
        return self.pkg == "" and self.name in OPERATORS

    def is_const(self) -> bool:
        return self.pkg == "" and _CONST_RE.fullmatch(self.name) is not None

    def is_virtual(self) -> bool:
        """True for routing placeholders inserted by the arrangement pass."""
        return self.pkg == "" and self.name == ""

    def const_value(self) -> float:
        return float(self.name)

    @property
    def label(self) -> str:
        """Text shown for the node in a drawing."""
        if self.is_inport():
            return self.name[len(INPORT_PREFIX) :]
        if self.is_outport():
            return self.name[len(OUTPORT_PREFIX) :]
        if self.is_delay():
            return "="
        return self.name

    def in_port_pos(self, port: Port) -> int:
        for i, p in enumerate(self.in_ports):
            if p is port:
                return i
        raise ValueError("no such input port")

    def out_port_pos(self, port: Port) -> int:
        for i, p in enumerate(self.out_ports):
            if p is port:
                return i
        raise ValueError("no such output port")


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Graph:
    """A named dataflow graph.

    The order of ``in_ports``/``out_ports`` is the parameter/result order of
    the compiled function. The order of ``nodes`` carries no meaning.
    """

    name: str = ""
    in_ports: list[Node] = field(default_factory=list)
    nodes: list[Node] = field(default_factory=list)
    out_ports: list[Node] = field(default_factory=list)

    def all_nodes(self) -> list[Node]:
        return [*self.in_ports, *self.nodes, *self.out_ports]

    def file_name(self) -> str:
        return self.name.lower() + ".dsp"

    def source_file_name(self) -> str:
        return self.name.lower() + ".py"

    def contains(self, node: Node) -> bool:
        return any(n is node for n in self.all_nodes())

    def _group(self, node: Node) -> list[Node]:
        for group in (self.in_ports, self.nodes, self.out_ports):
            if any(n is node for n in group):
                return group
        raise ValueError(f"node {node.name!r} is not in graph {self.name!r}")

    # -- editing ------------------------------------------------------------

    def add_node(self, node: Node, index: int | None = None) -> Node:
        """Add a node to the group its kind belongs to.

        ``index`` positions an input/output terminal among its siblings and
        is ignored for other nodes.
        """
        if node.is_delay() and not node.is_delay_write():
            if node.delay_write is None or not self.contains(node.delay_write):
                raise ValueError("delay read node refers to a delay not in this graph")
        if node.is_inport():
            group = self.in_ports
        elif node.is_outport():
            group = self.out_ports
        else:
            self.nodes.append(node)
            return node
        if index is None:
            group.append(node)
        else:
            group.insert(index, node)
        return node

    def connect(self, src: Port, dst: Port) -> Connection:
        """Connect an output port to an input port."""
        if not src.out:
            raise InvalidConnectionError("connection source must be an output port")
        if dst.out:
            raise InvalidConnectionError("connection destination must be an input port")
        if dst.conns:
            raise InvalidConnectionError("input port is already connected")
        for port in (src, dst):
            if not self.contains(port.node):
                raise InvalidConnectionError(f"node {port.node.name!r} is not in this graph")
        if self._reaches(dst.node, src.node):
            raise InvalidConnectionError(
                f"connecting {src.node.name!r} to {dst.node.name!r} would create a cycle"
            )
        conn = Connection(src=src, dst=dst)
        src.conns.append(conn)
        dst.conns.append(conn)
        return conn

    def disconnect(self, conn: Connection) -> None:
        """Remove a connection from both of its endpoints."""
        src_conns = [c for c in conn.src.conns if c is not conn]
        dst_conns = [c for c in conn.dst.conns if c is not conn]
        conn.src.conns[:] = src_conns
        conn.dst.conns[:] = dst_conns

    def remove_node(self, node: Node) -> None:
        """Remove a node and every connection touching it.

        Removing a delay-write node also removes the delay-read nodes that
        share its state.
        """
        group = self._group(node)
        for port in [*node.in_ports, *node.out_ports]:
            while port.conns:
                self.disconnect(port.conns[0])
        group[:] = [n for n in group if n is not node]

        if node.is_delay_write():
            for reader in self.delay_reads(node):
                self.remove_node(reader)

    def delay_reads(self, write: Node) -> list[Node]:
        """Delay-read nodes sharing state with ``write``."""
        return [n for n in self.nodes if n.delay_write is write and n is not write]

    @staticmethod
    def _reaches(start: Node, target: Node) -> bool:
        """True if ``target`` is ``start`` or downstream of it."""
        seen: set[int] = set()
        stack = [start]
        while stack:
            n = stack.pop()
            if n is target:
                return True
            if id(n) in seen:
                continue
            seen.add(id(n))
            for p in n.out_ports:
                stack.extend(c.dst.node for c in p.conns)
        return False


def format_number(value: float) -> str:
    """Format a float the way constant nodes spell it."""
    if math.isfinite(value) and value == int(value):
        return str(int(value))
    return repr(value)
