from __future__ import annotations

import pytest

from dsp_patch import (
    Graph,
    new_const_node,
    new_delay_node,
    new_delay_read_node,
    new_node,
    new_operator_node,
    new_port_node,
)
from dsp_patch.runtime import WhiteNoise, mix, pan


@pytest.fixture
def inc_graph() -> Graph:
    """Stateless increment: x + 1 -> y."""
    g = Graph(name="inc")
    x = g.add_node(new_port_node(False, "x"))
    y = g.add_node(new_port_node(True, "y"))
    add = g.add_node(new_operator_node("+"))
    one = g.add_node(new_const_node("1"))
    g.connect(x.out_ports[0], add.in_ports[0])
    g.connect(one.out_ports[0], add.in_ports[1])
    g.connect(add.out_ports[0], y.in_ports[0])
    return g


@pytest.fixture
def echo_graph() -> Graph:
    """Feedback echo: y = x + feedback * y delayed by ``time`` seconds."""
    g = Graph(name="echo")
    x = g.add_node(new_port_node(False, "x"))
    time = g.add_node(new_port_node(False, "time"))
    feedback = g.add_node(new_port_node(False, "feedback"))
    y = g.add_node(new_port_node(True, "y"))
    write = g.add_node(new_delay_node())
    tap = g.add_node(new_delay_read_node(write))
    mul = g.add_node(new_operator_node("*"))
    add = g.add_node(new_operator_node("+"))
    g.connect(time.out_ports[0], tap.in_ports[0])
    g.connect(tap.out_ports[0], mul.in_ports[0])
    g.connect(feedback.out_ports[0], mul.in_ports[1])
    g.connect(x.out_ports[0], add.in_ports[0])
    g.connect(mul.out_ports[0], add.in_ports[1])
    g.connect(time.out_ports[0], write.in_ports[0])
    g.connect(add.out_ports[0], write.in_ports[1])
    g.connect(add.out_ports[0], y.in_ports[0])
    return g


@pytest.fixture
def tap_graph() -> Graph:
    """Plain delay: writes x, then reads back ``time`` seconds ago."""
    g = Graph(name="tap")
    x = g.add_node(new_port_node(False, "x"))
    time = g.add_node(new_port_node(False, "time"))
    y = g.add_node(new_port_node(True, "y"))
    write = g.add_node(new_delay_node())
    g.connect(time.out_ports[0], write.in_ports[0])
    g.connect(x.out_ports[0], write.in_ports[1])
    g.connect(write.out_ports[0], y.in_ports[0])
    return g


@pytest.fixture
def blend_graph() -> Graph:
    """Stateless crossfade through a library function."""
    g = Graph(name="blend")
    terminals = [g.add_node(new_port_node(False, name)) for name in ("a", "b", "t")]
    y = g.add_node(new_port_node(True, "y"))
    node = new_node(mix)
    assert node is not None
    g.add_node(node)
    for term, port in zip(terminals, node.in_ports):
        g.connect(term.out_ports[0], port)
    g.connect(node.out_ports[0], y.in_ports[0])
    return g


@pytest.fixture
def panner_graph() -> Graph:
    """Two results from one NamedTuple-returning node."""
    g = Graph(name="panner")
    x = g.add_node(new_port_node(False, "x"))
    p = g.add_node(new_port_node(False, "p"))
    left = g.add_node(new_port_node(True, "left"))
    right = g.add_node(new_port_node(True, "right"))
    node = new_node(pan)
    assert node is not None
    g.add_node(node)
    g.connect(x.out_ports[0], node.in_ports[0])
    g.connect(p.out_ports[0], node.in_ports[1])
    g.connect(node.out_ports[0], left.in_ports[0])
    g.connect(node.out_ports[1], right.in_ports[0])
    return g


@pytest.fixture
def noise_graph() -> Graph:
    """A stateful generator with no inputs."""
    g = Graph(name="noise")
    y = g.add_node(new_port_node(True, "y"))
    node = new_node(WhiteNoise)
    assert node is not None
    g.add_node(node)
    g.connect(node.out_ports[0], y.in_ports[0])
    return g


@pytest.fixture
def crossed_graph() -> Graph:
    """Two parallel paths whose canonical order crosses twice.

    a -> "+" -> p and b -> "*" -> q; the middle layer sorts "*" before "+".
    """
    g = Graph(name="crossed")
    a = g.add_node(new_port_node(False, "a"))
    b = g.add_node(new_port_node(False, "b"))
    p = g.add_node(new_port_node(True, "p"))
    q = g.add_node(new_port_node(True, "q"))
    add = g.add_node(new_operator_node("+"))
    mul = g.add_node(new_operator_node("*"))
    g.connect(a.out_ports[0], add.in_ports[0])
    g.connect(b.out_ports[0], mul.in_ports[0])
    g.connect(add.out_ports[0], p.in_ports[0])
    g.connect(mul.out_ports[0], q.in_ports[0])
    return g
