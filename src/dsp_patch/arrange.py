"""Arrangement: routing nodes for long edges and crossing minimization."""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Literal

import numpy as np

from dsp_patch.layers import Layers, assign_layers
from dsp_patch.models import Connection, Graph, Node, Port

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 1000
DEFAULT_SEED = 1

# Upper bound on candidate arrangements the exhaustive search will enumerate.
EXHAUSTIVE_LIMIT = 100_000

Strategy = Literal["local", "exhaustive"]

# (source index, destination index, source node, destination node)
_Edge = tuple[int, int, Node, Node]


@dataclass
class Arrangement:
    """Ordered layers, including virtual routing nodes.

    ``virtual_conns`` maps each connection spanning several layers to the first
    hop of its routing chain: ``src`` is the real source port and ``dst`` the
    input port of the first virtual node. Hops continue through the virtual
    nodes' output ports and end at the real destination port.
    """

    layers: Layers
    node_layers: dict[Node, int]
    virtual_conns: dict[Connection, Connection] = field(default_factory=dict)
    crossings: int = 0

    def route(self, conn: Connection) -> list[Node]:
        """Virtual nodes a connection passes through, in order."""
        first = self.virtual_conns.get(conn)
        if first is None:
            return []
        nodes: list[Node] = []
        port = first.dst
        while port.node.is_virtual():
            nodes.append(port.node)
            port = port.node.out_ports[0].conns[0].dst
        return nodes


def arrange(
    graph: Graph,
    *,
    strategy: Strategy = "local",
    iterations: int = DEFAULT_ITERATIONS,
    seed: int = DEFAULT_SEED,
) -> Arrangement:
    """Layer the graph, route long edges and order layers to reduce crossings.

    The ``"local"`` strategy is a seeded randomized swap search and is
    reproducible for a given graph and seed. ``"exhaustive"`` tries every
    permutation of every reorderable layer and is only usable on tiny graphs.
    """
    if strategy not in ("local", "exhaustive"):
        raise ValueError(f"unknown arrangement strategy: {strategy!r}")

    layers, node_layers = assign_layers(graph)
    arrangement = Arrangement(layers=layers, node_layers=node_layers)
    if not layers:
        return arrangement

    if not graph.nodes:
        # Terminals only: every edge already joins adjacent layers.
        arrangement.crossings = count_crossings(layers, {})
        return arrangement

    arrangement.virtual_conns = _insert_virtual_nodes(graph, layers, node_layers)
    initial = count_crossings(layers, arrangement.virtual_conns)
    reorderable = _reorderable_layers(graph, layers)
    if strategy == "exhaustive":
        arrangement.crossings = _exhaustive(layers, reorderable, arrangement.virtual_conns)
    else:
        arrangement.crossings = _local_search(
            layers, reorderable, arrangement.virtual_conns, initial, iterations, seed
        )

    logger.debug(
        "arranged %r: %d layers, crossings %d -> %d",
        graph.name,
        len(layers),
        initial,
        arrangement.crossings,
    )
    return arrangement


# ---------------------------------------------------------------------------
# Virtual routing nodes
# ---------------------------------------------------------------------------


def _insert_virtual_nodes(
    graph: Graph, layers: Layers, node_layers: dict[Node, int]
) -> dict[Connection, Connection]:
    virtual_conns: dict[Connection, Connection] = {}
    for n in graph.all_nodes():
        layer = node_layers[n]
        for p in n.in_ports:
            for c in p.conns:
                src_layer = node_layers[c.src.node]
                if src_layer >= layer - 1:
                    continue
                prev = c.src
                first: Connection | None = None
                for lay in range(src_layer + 1, layer):
                    v = Node()
                    ip = v.add_in_port()
                    hop = Connection(src=prev, dst=ip)
                    ip.conns.append(hop)
                    if first is None:
                        first = hop
                    else:
                        prev.conns.append(hop)
                    layers[lay].append(v)
                    node_layers[v] = lay
                    prev = v.add_out_port()
                prev.conns.append(Connection(src=prev, dst=p))
                assert first is not None
                virtual_conns[c] = first
    return virtual_conns


def _reorderable_layers(graph: Graph, layers: Layers) -> list[int]:
    last = len(layers) - 1
    result = []
    for i in range(len(layers)):
        if i == 0 and graph.in_ports:
            continue
        if i == last and graph.out_ports:
            continue
        result.append(i)
    return result


# ---------------------------------------------------------------------------
# Crossing counting
# ---------------------------------------------------------------------------


def _boundary_edges(
    left: list[Node], right: list[Node], virtual_conns: dict[Connection, Connection]
) -> list[_Edge]:
    dst_index: dict[Port, int] = {}
    for n in right:
        for p in n.in_ports:
            dst_index[p] = len(dst_index)
    edges: list[_Edge] = []
    src_index = 0
    for n in left:
        for p in n.out_ports:
            for c in p.conns:
                c = virtual_conns.get(c, c)
                edges.append((src_index, dst_index[c.dst], n, c.dst.node))
            src_index += 1
    return edges


def _inversions(edges: list[_Edge], involved: set[Node] | None = None) -> int:
    """Count crossing edge pairs, optionally only pairs touching ``involved``."""
    total = 0
    for a, ea in enumerate(edges):
        touches_a = involved is None or ea[2] in involved or ea[3] in involved
        for eb in edges[a + 1 :]:
            if not touches_a and not (eb[2] in involved or eb[3] in involved):  # type: ignore[operator]
                continue
            if (ea[0] - eb[0]) * (ea[1] - eb[1]) < 0:
                total += 1
    return total


def count_crossings(layers: Layers, virtual_conns: dict[Connection, Connection]) -> int:
    """Total number of edge crossings between all adjacent layers."""
    total = 0
    for left, right in zip(layers, layers[1:]):
        total += _inversions(_boundary_edges(left, right, virtual_conns))
    return total


def _crossings_at(
    layers: Layers,
    index: int,
    virtual_conns: dict[Connection, Connection],
    involved: set[Node],
) -> int:
    """Crossings on both boundaries of a layer that involve the given nodes."""
    total = 0
    if index > 0:
        edges = _boundary_edges(layers[index - 1], layers[index], virtual_conns)
        total += _inversions(edges, involved)
    if index < len(layers) - 1:
        edges = _boundary_edges(layers[index], layers[index + 1], virtual_conns)
        total += _inversions(edges, involved)
    return total


# ---------------------------------------------------------------------------
# Search strategies
# ---------------------------------------------------------------------------


def _local_search(
    layers: Layers,
    reorderable: list[int],
    virtual_conns: dict[Connection, Connection],
    crossings: int,
    iterations: int,
    seed: int,
) -> int:
    candidates = [i for i in reorderable if len(layers[i]) > 1]
    if not candidates or crossings == 0:
        return crossings

    rng = np.random.default_rng(seed)
    for _ in range(iterations):
        index = candidates[int(rng.integers(len(candidates)))]
        layer = layers[index]
        a, b = (int(x) for x in rng.choice(len(layer), size=2, replace=False))
        involved = {layer[a], layer[b]}

        before = _crossings_at(layers, index, virtual_conns, involved)
        layer[a], layer[b] = layer[b], layer[a]
        delta = _crossings_at(layers, index, virtual_conns, involved) - before
        if delta > 0:
            layer[a], layer[b] = layer[b], layer[a]
        else:
            crossings += delta
        if crossings == 0:
            break
    return crossings


def _exhaustive(
    layers: Layers, reorderable: list[int], virtual_conns: dict[Connection, Connection]
) -> int:
    candidates = math.prod(math.factorial(len(layers[i])) for i in reorderable)
    if candidates > EXHAUSTIVE_LIMIT:
        raise ValueError(
            f"exhaustive arrangement would try {candidates} candidates "
            f"(limit {EXHAUSTIVE_LIMIT})"
        )

    best_crossings = count_crossings(layers, virtual_conns)
    best = {i: list(layers[i]) for i in reorderable}
    perms = [list(itertools.permutations(best[i])) for i in reorderable]
    for combo in itertools.product(*perms):
        for i, perm in zip(reorderable, combo):
            layers[i] = list(perm)
        crossings = count_crossings(layers, virtual_conns)
        if crossings < best_crossings:
            best_crossings = crossings
            best = {i: list(layers[i]) for i in reorderable}
    for i, order in best.items():
        layers[i] = order
    return best_crossings
