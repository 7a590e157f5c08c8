"""Python code generation from dataflow graphs."""

from __future__ import annotations

import keyword
import logging
import math
import re
from pathlib import Path
from typing import Callable

from dsp_patch.factory import RUNTIME_PKG
from dsp_patch.layers import Layers, assign_layers
from dsp_patch.models import Graph, Node, Port
from dsp_patch.validate import is_identifier, validate_graph

logger = logging.getLogger(__name__)

_Writer = Callable[[str], None]

# Names the generated module binds itself.
_RESERVED = frozenset({"self", "config", "dataclass", "field", "float", "tuple", "_"})

# Parameters that would shadow names the body itself relies on.
_SHADOWING = frozenset({"float", "_"})

_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")
_NON_ID_RE = re.compile(r"\W")


def _to_pascal(name: str) -> str:
    """Convert underscore_name to PascalCase."""
    return "".join(part.capitalize() for part in name.split("_"))


def _to_snake(name: str) -> str:
    """Convert a (possibly dotted) CamelCase name to snake_case."""
    name = name.rsplit(".", 1)[-1]
    return _NON_ID_RE.sub("_", _CAMEL_RE.sub(r"\1_\2", name)).lower() or "node"


def _float_lit(v: float) -> str:
    """Format a float as a Python expression."""
    if math.isnan(v):
        return "float('nan')"
    if math.isinf(v):
        return "float('inf')" if v > 0 else "float('-inf')"
    return repr(float(v))


def _temp_prefix(params: set[str]) -> str:
    """A prefix for numbered temporaries that no parameter can shadow."""
    prefix = "v"
    while any(re.fullmatch(re.escape(prefix) + r"\d+", p) for p in params):
        prefix += "_"
    return prefix


def _aliases(pkgs: list[str], taken: Callable[[str], bool]) -> dict[str, str]:
    """Map each package to a unique import alias, in sorted package order."""
    aliases: dict[str, str] = {}
    used: set[str] = set()
    for pkg in sorted(pkgs):
        base = pkg.rsplit(".", 1)[-1]
        if not is_identifier(base):
            base = "mod"
        alias = base
        k = 1
        while alias in used or taken(alias):
            alias = f"{base}{k}"
            k += 1
        used.add(alias)
        aliases[pkg] = alias
    return aliases


def _ordered_nodes(layers: Layers) -> list[Node]:
    return [n for layer in layers for n in layer if not n.is_virtual()]


def generate_source(graph: Graph, layers: Layers | None = None) -> str:
    """Compile a graph to Python source code.

    A graph without stateful nodes becomes a plain function named after the
    graph. Otherwise it becomes a dataclass with ``init`` and ``process``
    methods, which is itself usable as a stateful node.

    Raises ValueError if the graph is invalid, its name is not a valid Python
    identifier, or an input terminal would shadow a name the body uses.
    """
    errors = validate_graph(graph)
    if errors:
        raise ValueError("Invalid graph: " + "; ".join(errors))
    if not is_identifier(graph.name):
        raise ValueError(f"Graph name '{graph.name}' is not a valid Python identifier")

    if layers is None:
        layers, _ = assign_layers(graph)
    order = _ordered_nodes(layers)

    params = [n.label for n in graph.in_ports]
    stateful = any(n.stateful for n in graph.nodes)
    for p in params:
        if p in _SHADOWING or (stateful and p == "self"):
            raise ValueError(f"Input terminal '{p}' clashes with a name the generated code uses")

    class_name = _to_pascal(graph.name)
    prefix = _temp_prefix(set(params))
    reserved = _RESERVED | set(params) | {graph.name, class_name}

    def taken(alias: str) -> bool:
        return (
            alias in reserved
            or keyword.iskeyword(alias)
            or re.fullmatch(re.escape(prefix) + r"\d+", alias) is not None
        )

    pkgs = {n.pkg for n in graph.nodes if n.pkg}
    if stateful:
        pkgs.add(RUNTIME_PKG)
    aliases = _aliases(sorted(pkgs), taken)

    fields = _state_fields(order)

    lines: list[str] = []
    w = lines.append

    # -- Header
    w(f"# Generated by dsp-patch from graph '{graph.name}'. Do not edit.")
    w("")
    if stateful:
        w("from dataclasses import dataclass, field")
        w("")
    for pkg in sorted(aliases):
        w(f"import {pkg} as {aliases[pkg]}")
    if aliases:
        w("")
    w("")

    signature = ", ".join(f"{p}: float" for p in params)
    ret = _return_annotation(len(graph.out_ports))

    if stateful:
        runtime = aliases[RUNTIME_PKG]
        w("@dataclass")
        w(f"class {class_name}:")
        for fname, node in fields.values():
            factory = f"{aliases[node.pkg]}.{node.name}"
            w(f"    {fname}: {factory} = field(default_factory={factory})")
        w("")
        w(f"    def init(self, config: {runtime}.Config) -> None:")
        for fname, _node in fields.values():
            w(f"        self.{fname}.init(config)")
        w("")
        sig = ", ".join(["self", *([signature] if signature else [])])
        w(f"    def process({sig}) -> {ret}:")
        indent = "        "
    else:
        w(f"def {graph.name}({signature}) -> {ret}:")
        indent = "    "

    body: list[str] = []
    _emit_body(graph, order, aliases, fields, prefix, body.append)
    if not body:
        body.append("pass")
    for line in body:
        w(indent + line)

    code = "\n".join(lines) + "\n"
    logger.debug("generated %d lines for graph %r", len(lines), graph.name)
    return code


def write_source(graph: Graph, directory: str | Path) -> Path:
    """Compile a graph and write its source file to ``directory``.

    Creates the directory if it doesn't exist.
    Returns the path to the written file.
    """
    code = generate_source(graph)
    out = Path(directory)
    out.mkdir(parents=True, exist_ok=True)
    path = out / graph.source_file_name()
    path.write_text(code)
    return path


def _return_annotation(count: int) -> str:
    if count == 0:
        return "None"
    if count == 1:
        return "float"
    return "tuple[" + ", ".join(["float"] * count) + "]"


# ---------------------------------------------------------------------------
# State fields
# ---------------------------------------------------------------------------


def _state_fields(order: list[Node]) -> dict[int, tuple[str, Node]]:
    """Assign a field per stateful node; delay reads share their write node's.

    Keyed by ``id`` of the owning node (the write node for delays).
    """
    fields: dict[int, tuple[str, Node]] = {}
    counters: dict[str, int] = {}
    for node in order:
        if not node.stateful:
            continue
        owner = node.delay_write if node.is_delay() else node
        assert owner is not None
        if id(owner) in fields:
            continue
        base = _to_snake(owner.name)
        k = counters.get(base, 0)
        counters[base] = k + 1
        fields[id(owner)] = (f"{base}{k}", owner)
    return fields


def _field_of(node: Node, fields: dict[int, tuple[str, Node]]) -> str:
    owner = node.delay_write if node.is_delay() else node
    return fields[id(owner)][0]


# ---------------------------------------------------------------------------
# Body emission
# ---------------------------------------------------------------------------


def _emit_body(
    graph: Graph,
    order: list[Node],
    aliases: dict[str, str],
    fields: dict[int, tuple[str, Node]],
    prefix: str,
    w: _Writer,
) -> None:
    values: dict[int, str] = {}
    for n in graph.in_ports:
        values[id(n.out_ports[0])] = n.label

    def arg(port: Port) -> str:
        if not port.conns:
            return "0.0"
        return values[id(port.conns[0].src)]

    counter = 0
    emitted: set[int] = set()

    def bind(node: Node) -> list[str]:
        nonlocal counter
        targets = []
        for p in node.out_ports:
            if p.conns:
                name = f"{prefix}{counter}"
                counter += 1
                values[id(p)] = name
                targets.append(name)
            else:
                targets.append("_")
        return targets

    for node in order:
        if node.is_inport() or node.is_outport():
            continue
        emitted.add(id(node))
        if node.is_const():
            values[id(node.out_ports[0])] = _float_lit(node.const_value())
            continue

        args = [arg(p) for p in node.in_ports]
        targets = bind(node)
        used = any(t != "_" for t in targets)

        if node.is_operator():
            w(f"{targets[0]} = {args[0]} {node.name} {args[1]}")
            continue

        if node.is_delay_write():
            field_name = _field_of(node, fields)
            time, x = args
            w(f"self.{field_name}.write({x})")
            if used:
                w(f"{targets[0]} = self.{field_name}.read({time})")
            continue

        if node.is_delay():
            field_name = _field_of(node, fields)
            assert node.delay_write is not None
            method = "read" if id(node.delay_write) in emitted else "feedback_read"
            call = f"self.{field_name}.{method}({args[0]})"
        elif node.stateful:
            call = f"self.{_field_of(node, fields)}.process({', '.join(args)})"
        else:
            call = f"{aliases[node.pkg]}.{node.name}({', '.join(args)})"

        if not used:
            w(call)
        elif len(targets) == 1 and not node.out_ports[0].name:
            w(f"{targets[0]} = {call}")
        elif len(targets) == 1:
            # one-field NamedTuple
            w(f"({targets[0]},) = {call}")
        else:
            w(f"{', '.join(targets)} = {call}")

    results = [arg(n.in_ports[0]) for n in graph.out_ports]
    if results:
        w("return " + ", ".join(results))
