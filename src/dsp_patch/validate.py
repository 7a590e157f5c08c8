"""Graph validation: structural invariant checks."""

from __future__ import annotations

import keyword
from collections import defaultdict

from dsp_patch.models import Graph, Node


class GraphValidationError(str):
    """A structured validation error that behaves as a plain string.

    Subclasses ``str`` so call sites can join, compare and print errors
    directly while still inspecting ``kind`` and ``node``.
    """

    kind: str
    node: Node | None
    severity: str  # "error" | "warning"

    def __new__(
        cls,
        kind: str,
        message: str,
        *,
        node: Node | None = None,
        severity: str = "error",
    ) -> GraphValidationError:
        return super().__new__(cls, message)

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        node: Node | None = None,
        severity: str = "error",
    ) -> None:
        self.kind = kind
        self.node = node
        self.severity = severity


def is_identifier(name: str) -> bool:
    """True if ``name`` can be used as a Python variable name."""
    return name.isidentifier() and not keyword.iskeyword(name)


def validate_graph(graph: Graph) -> list[GraphValidationError]:
    """Validate a graph and return a list of errors (empty = valid)."""
    errors: list[GraphValidationError] = []
    members = {id(n) for n in graph.all_nodes()}

    # 1. Terminals live in the right group and have the right shape
    for group, want, what in (
        (graph.in_ports, Node.is_inport, "input terminal"),
        (graph.out_ports, Node.is_outport, "output terminal"),
    ):
        for n in group:
            if not want(n):
                errors.append(
                    GraphValidationError(
                        "misplaced_terminal", f"Node '{n.name}' is not an {what}", node=n
                    )
                )
    for n in graph.nodes:
        if n.is_inport() or n.is_outport():
            errors.append(
                GraphValidationError(
                    "misplaced_terminal",
                    f"Terminal '{n.name}' is listed among interior nodes",
                    node=n,
                )
            )

    for n in graph.all_nodes():
        if n.is_inport() and (n.in_ports or len(n.out_ports) != 1):
            errors.append(
                GraphValidationError(
                    "terminal_shape",
                    f"Input terminal '{n.label}' must have exactly one output port",
                    node=n,
                )
            )
        elif n.is_outport() and (n.out_ports or len(n.in_ports) != 1):
            errors.append(
                GraphValidationError(
                    "terminal_shape",
                    f"Output terminal '{n.label}' must have exactly one input port",
                    node=n,
                )
            )

    # 2. Terminal names are unique identifiers within their group
    for group in (graph.in_ports, graph.out_ports):
        seen: set[str] = set()
        for n in group:
            if not is_identifier(n.label):
                errors.append(
                    GraphValidationError(
                        "bad_terminal_name",
                        f"Terminal name '{n.label}' is not a valid identifier",
                        node=n,
                    )
                )
            if n.label in seen:
                errors.append(
                    GraphValidationError(
                        "duplicate_terminal", f"Duplicate terminal name: '{n.label}'", node=n
                    )
                )
            seen.add(n.label)

    # 3. Connections are well formed and registered on both ends
    for n in graph.all_nodes():
        for p in n.in_ports:
            if len(p.conns) > 1:
                errors.append(
                    GraphValidationError(
                        "fan_in",
                        f"Input port {n.in_port_pos(p)} of '{n.name}' has "
                        f"{len(p.conns)} connections",
                        node=n,
                    )
                )
            for c in p.conns:
                if c.dst is not p or not any(o is c for o in c.src.conns):
                    errors.append(
                        GraphValidationError(
                            "dangling_connection",
                            f"Connection into '{n.name}' is not registered on both ends",
                            node=n,
                        )
                    )
                if not c.src.out:
                    errors.append(
                        GraphValidationError(
                            "bad_direction",
                            f"Connection into '{n.name}' does not start at an output port",
                            node=n,
                        )
                    )
                if id(c.src.node) not in members:
                    errors.append(
                        GraphValidationError(
                            "foreign_node",
                            f"'{n.name}' is fed by '{c.src.node.name}' from another graph",
                            node=n,
                        )
                    )
        for p in n.out_ports:
            for c in p.conns:
                if c.src is not p or not any(i is c for i in c.dst.conns):
                    errors.append(
                        GraphValidationError(
                            "dangling_connection",
                            f"Connection out of '{n.name}' is not registered on both ends",
                            node=n,
                        )
                    )
                if c.dst.out:
                    errors.append(
                        GraphValidationError(
                            "bad_direction",
                            f"Connection out of '{n.name}' does not end at an input port",
                            node=n,
                        )
                    )
                if id(c.dst.node) not in members:
                    errors.append(
                        GraphValidationError(
                            "foreign_node",
                            f"'{n.name}' feeds '{c.dst.node.name}' from another graph",
                            node=n,
                        )
                    )

    # 4. Delay reads share state with a write node of this graph
    for n in graph.nodes:
        if not n.is_delay() or n.is_delay_write():
            continue
        write = n.delay_write
        if write is None or id(write) not in members or not write.is_delay_write():
            errors.append(
                GraphValidationError(
                    "missing_delay_write",
                    f"Delay read '{n.name}' does not refer to a delay in this graph",
                    node=n,
                )
            )

    # 5. No cycles -- Kahn's algorithm over the connections
    in_degree: dict[int, int] = {id(n): 0 for n in graph.all_nodes()}
    succs: dict[int, list[Node]] = defaultdict(list)
    for n in graph.all_nodes():
        for p in n.out_ports:
            for c in p.conns:
                if id(c.dst.node) in in_degree:
                    in_degree[id(c.dst.node)] += 1
                    succs[id(n)].append(c.dst.node)

    queue = [n for n in graph.all_nodes() if in_degree[id(n)] == 0]
    visited = 0
    while queue:
        current = queue.pop()
        visited += 1
        for dependent in succs[id(current)]:
            in_degree[id(dependent)] -= 1
            if in_degree[id(dependent)] == 0:
                queue.append(dependent)

    if visited < len(in_degree):
        cycle_nodes = [n.name for n in graph.all_nodes() if in_degree[id(n)] > 0]
        errors.append(
            GraphValidationError(
                "cycle",
                f"Graph contains a cycle through nodes: {', '.join(sorted(cycle_nodes))}",
            )
        )

    return errors
