"""Graphviz DOT visualization of arranged graphs."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

from dsp_patch.arrange import Arrangement, arrange
from dsp_patch.models import Graph, Node

# Delays sharing state share a colour, cycling through this palette.
_DELAY_COLORS = ("#fde0c8", "#f9c6d0", "#d1ecf1", "#e2d5f1", "#fff3cd", "#d4edda")


def _quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _node_attrs(node: Node, delay_colors: dict[int, str]) -> str:
    """Return the DOT attribute list for a node."""
    if node.is_virtual():
        return 'shape=point width=0.05 label=""'
    label = _quote(node.label)
    if node.is_inport():
        return f'shape=box style="rounded,filled" fillcolor="#d4edda" label="{label}"'
    if node.is_outport():
        return f'shape=box style="rounded,filled" fillcolor="#f8d7da" label="{label}"'
    if node.is_const():
        return f'shape=box style=filled fillcolor="#e9ecef" label="{label}"'
    if node.is_operator():
        return f'shape=circle style=filled fillcolor="#fff3cd" label="{label}"'
    if node.is_delay():
        color = delay_colors.get(id(node.delay_write), _DELAY_COLORS[0])
        kind = "write" if node.is_delay_write() else "read"
        return f'shape=box style=filled fillcolor="{color}" label="delay\\n{kind}"'
    if node.stateful:
        return f'shape=box3d style=filled fillcolor="#fde0c8" label="{label}"'
    return f'shape=box style=filled fillcolor="#cce5ff" label="{label}"'


def graph_to_dot(graph: Graph, arrangement: Arrangement | None = None) -> str:
    """Convert a graph to a Graphviz DOT string, one rank per layer."""
    if arrangement is None:
        arrangement = arrange(graph)

    ids: dict[int, str] = {}
    for layer in arrangement.layers:
        for n in layer:
            ids[id(n)] = f"n{len(ids)}"

    delay_colors: dict[int, str] = {}
    for n in graph.nodes:
        if n.is_delay_write():
            delay_colors[id(n)] = _DELAY_COLORS[len(delay_colors) % len(_DELAY_COLORS)]

    lines: list[str] = []
    w = lines.append

    w(f'digraph "{_quote(graph.name)}" {{')
    w("    rankdir=LR;")
    w('    node [fontname="Helvetica" fontsize=10];')
    w("")

    for layer in arrangement.layers:
        w("    { rank=same; " + " ".join(f'"{ids[id(n)]}";' for n in layer) + " }")
    w("")

    for layer in arrangement.layers:
        for n in layer:
            w(f'    "{ids[id(n)]}" [{_node_attrs(n, delay_colors)}];')
    w("")

    # Edges, routed through virtual nodes when they span several layers
    for layer in arrangement.layers:
        for n in layer:
            if n.is_virtual():
                continue
            for p in n.out_ports:
                for c in p.conns:
                    hops = [n, *arrangement.route(c), c.dst.node]
                    head = f' [headlabel="{_quote(c.dst.name)}"]' if c.dst.name else ""
                    for a, b in zip(hops, hops[1:-1]):
                        w(f'    "{ids[id(a)]}" -> "{ids[id(b)]}" [arrowhead=none];')
                    w(f'    "{ids[id(hops[-2])]}" -> "{ids[id(hops[-1])]}"{head};')

    # Shared delay state
    for n in graph.nodes:
        if n.is_delay() and not n.is_delay_write() and id(n.delay_write) in ids:
            w(
                f'    "{ids[id(n.delay_write)]}" -> "{ids[id(n)]}"'
                " [style=dashed arrowhead=none constraint=false];"
            )

    w("}")
    return "\n".join(lines) + "\n"


def graph_to_dot_file(
    graph: Graph, output_dir: str | Path, arrangement: Arrangement | None = None
) -> Path:
    """Write a DOT file for the graph to output_dir/{name}.dot.

    If the ``dot`` binary is on PATH, also renders a PDF to
    ``output_dir/{name}.pdf``.

    Returns the path to the written ``.dot`` file.
    """
    dot_src = graph_to_dot(graph, arrangement)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    dot_path = out / f"{graph.name}.dot"
    dot_path.write_text(dot_src)

    dot_bin = shutil.which("dot")
    if dot_bin is not None:
        pdf_path = out / f"{graph.name}.pdf"
        subprocess.run(
            [dot_bin, "-Tpdf", str(dot_path), "-o", str(pdf_path)],
            check=True,
        )

    return dot_path
