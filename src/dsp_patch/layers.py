"""Layer assignment for dataflow graphs.

Every connection points from a strictly lower layer to a strictly higher one.
Nodes are placed by longest path to a sink, input terminals are pinned to the
first layer and output terminals to the last, and nodes within a layer get a
canonical order that depends only on graph structure.
"""

from __future__ import annotations

from functools import cmp_to_key

from dsp_patch.models import Graph, Node

Layers = list[list[Node]]


def assign_layers(graph: Graph) -> tuple[Layers, dict[Node, int]]:
    """Return (layers, node -> layer index) for every node of the graph.

    Returns ``([], {})`` for an empty graph.
    """
    all_nodes = graph.all_nodes()
    if not all_nodes:
        return [], {}

    node_layers: dict[Node, int] = {}
    first_layer = 0

    def propagate(sink: Node) -> None:
        nonlocal first_layer
        stack = [(sink, 0)]
        while stack:
            n, layer = stack.pop()
            if n in node_layers and node_layers[n] <= layer:
                continue
            node_layers[n] = layer
            first_layer = min(first_layer, layer)
            for p in n.in_ports:
                for c in p.conns:
                    stack.append((c.src.node, layer - 1))

    sinks = [n for n in all_nodes if not any(p.conns for p in n.out_ports)]
    for n in sinks:
        propagate(n)
    num_layers = 1 - first_layer

    # Sinks trail their inputs instead of collapsing onto layer 0.
    for n in sinks:
        preds = [node_layers[c.src.node] for p in n.in_ports for c in p.conns]
        if preds:
            node_layers[n] = max(preds) + 1
        else:
            node_layers[n] = first_layer + num_layers // 2

    def pin(layer: int, new_layer: int, terminals: list[Node], allow_consts: bool) -> bool:
        """Move terminals into ``layer``, or ``new_layer`` if ``layer`` is shared."""
        if not terminals:
            return False
        in_layer = sum(1 for n in terminals if node_layers[n] == layer)
        occupants = sum(
            1
            for n in all_nodes
            if node_layers[n] == layer and not (allow_consts and n.is_const())
        )
        added = in_layer != occupants
        target = new_layer if added else layer
        for n in terminals:
            node_layers[n] = target
        return added

    if pin(first_layer, first_layer - 1, graph.in_ports, allow_consts=True):
        first_layer -= 1
        num_layers += 1
    if pin(0, 1, graph.out_ports, allow_consts=False):
        num_layers += 1

    layers: Layers = [[] for _ in range(num_layers)]
    for n in all_nodes:
        node_layers[n] -= first_layer
        layers[node_layers[n]].append(n)

    _order_layers(graph, layers, node_layers)
    return layers, node_layers


def _sign(a: int | str, b: int | str) -> int:
    return (a > b) - (a < b)  # type: ignore[operator]


def _order_layers(graph: Graph, layers: Layers, node_layers: dict[Node, int]) -> None:
    """Sort each layer into its canonical order, in place."""
    positions: dict[Node, int] = {}
    for i, n in enumerate(graph.in_ports):
        positions[n] = i
    for i, n in enumerate(graph.out_ports):
        positions[n] = i

    def compare(n1: Node, n2: Node) -> int:
        if n1.name != n2.name:
            return _sign(n1.name, n2.name)
        if len(n1.in_ports) != len(n2.in_ports):
            return _sign(len(n1.in_ports), len(n2.in_ports))
        if len(n1.out_ports) != len(n2.out_ports):
            return _sign(len(n1.out_ports), len(n2.out_ports))
        for p1, p2 in zip(n1.in_ports, n2.in_ports):
            if len(p1.conns) != len(p2.conns):
                return _sign(len(p1.conns), len(p2.conns))
            for c1, c2 in zip(p1.conns, p2.conns):
                s1, s2 = c1.src.node, c2.src.node
                if node_layers[s1] != node_layers[s2]:
                    return _sign(node_layers[s1], node_layers[s2])
                if positions[s1] != positions[s2]:
                    return _sign(positions[s1], positions[s2])
                if c1.src is not c2.src:
                    return _sign(s1.out_port_pos(c1.src), s2.out_port_pos(c2.src))
        for p1, p2 in zip(n1.out_ports, n2.out_ports):
            if len(p1.conns) != len(p2.conns):
                return _sign(len(p1.conns), len(p2.conns))
            for c1, c2 in zip(p1.conns, p2.conns):
                d1, d2 = c1.dst.node, c2.dst.node
                if node_layers[d1] != node_layers[d2]:
                    return _sign(node_layers[d1], node_layers[d2])
                if len(d1.in_ports) != len(d2.in_ports):
                    return _sign(len(d1.in_ports), len(d2.in_ports))
                # Only output terminals are placed before their predecessors.
                k1, k2 = positions.get(d1), positions.get(d2)
                if k1 is not None and k2 is not None and k1 != k2:
                    return _sign(k1, k2)
                i1, i2 = d1.in_port_pos(c1.dst), d2.in_port_pos(c2.dst)
                if i1 != i2:
                    return _sign(i1, i2)
        return 0

    key = cmp_to_key(compare)
    last = len(layers) - 1
    for i, layer in enumerate(layers):
        if i == 0 and graph.in_ports:
            # Terminals keep their declared order; constants sharing the layer follow.
            terminals = [n for n in layer if n.is_inport()]
            rest = sorted((n for n in layer if not n.is_inport()), key=key)
            layer[:] = terminals + rest
        elif i == last and graph.out_ports:
            pass
        else:
            layer.sort(key=key)
        for j, n in enumerate(layer):
            positions[n] = j
