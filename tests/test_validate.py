from __future__ import annotations

from dsp_patch import (
    Graph,
    GraphValidationError,
    new_delay_node,
    new_delay_read_node,
    new_operator_node,
    new_port_node,
    validate_graph,
)
from dsp_patch.models import Connection, Port


def _kinds(g: Graph) -> list[str]:
    return [e.kind for e in validate_graph(g)]


def _wire(src: Port, dst: Port) -> Connection:
    """Connect two ports without any of Graph.connect's checks."""
    conn = Connection(src=src, dst=dst)
    src.conns.append(conn)
    dst.conns.append(conn)
    return conn


# ---------------------------------------------------------------------------
# Valid graphs
# ---------------------------------------------------------------------------


class TestValidGraphs:
    def test_fixtures_valid(
        self,
        inc_graph: Graph,
        echo_graph: Graph,
        tap_graph: Graph,
        panner_graph: Graph,
        noise_graph: Graph,
    ) -> None:
        for g in (inc_graph, echo_graph, tap_graph, panner_graph, noise_graph):
            assert validate_graph(g) == []

    def test_empty_graph_valid(self) -> None:
        assert validate_graph(Graph(name="empty")) == []

    def test_same_name_in_and_out(self) -> None:
        g = Graph(name="g")
        x = g.add_node(new_port_node(False, "x"))
        y = g.add_node(new_port_node(True, "x"))
        g.connect(x.out_ports[0], y.in_ports[0])
        assert validate_graph(g) == []


# ---------------------------------------------------------------------------
# Terminals
# ---------------------------------------------------------------------------


class TestTerminals:
    def test_terminal_among_nodes(self) -> None:
        g = Graph(name="g")
        g.nodes.append(new_port_node(True, "y"))
        assert _kinds(g) == ["misplaced_terminal"]

    def test_operator_among_inputs(self) -> None:
        g = Graph(name="g")
        g.in_ports.append(new_operator_node("+"))
        assert "misplaced_terminal" in _kinds(g)

    def test_terminal_shape(self) -> None:
        g = Graph(name="g")
        x = g.add_node(new_port_node(False, "x"))
        x.add_out_port()
        assert _kinds(g) == ["terminal_shape"]

    def test_duplicate_input_name(self) -> None:
        g = Graph(name="g")
        g.add_node(new_port_node(False, "x"))
        dup = g.add_node(new_port_node(False, "x"))
        errors = validate_graph(g)
        assert [e.kind for e in errors] == ["duplicate_terminal"]
        assert errors[0].node is dup
        assert "Duplicate terminal name" in errors[0]

    def test_name_not_identifier(self) -> None:
        g = Graph(name="g")
        g.add_node(new_port_node(False, "two words"))
        g.add_node(new_port_node(True, "class"))
        assert _kinds(g) == ["bad_terminal_name", "bad_terminal_name"]


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class TestConnections:
    def test_fan_in(self) -> None:
        g = Graph(name="g")
        a = g.add_node(new_port_node(False, "a"))
        b = g.add_node(new_port_node(False, "b"))
        y = g.add_node(new_port_node(True, "y"))
        g.connect(a.out_ports[0], y.in_ports[0])
        _wire(b.out_ports[0], y.in_ports[0])
        assert _kinds(g) == ["fan_in"]

    def test_one_sided_connection(self) -> None:
        g = Graph(name="g")
        x = g.add_node(new_port_node(False, "x"))
        y = g.add_node(new_port_node(True, "y"))
        x.out_ports[0].conns.append(Connection(src=x.out_ports[0], dst=y.in_ports[0]))
        assert _kinds(g) == ["dangling_connection"]

    def test_reversed_connection(self) -> None:
        g = Graph(name="g")
        x = g.add_node(new_port_node(False, "x"))
        add = g.add_node(new_operator_node("+"))
        _wire(add.in_ports[0], x.out_ports[0])
        assert "bad_direction" in _kinds(g)

    def test_foreign_node(self) -> None:
        other = Graph(name="other")
        stray = other.add_node(new_port_node(False, "stray"))
        g = Graph(name="g")
        y = g.add_node(new_port_node(True, "y"))
        _wire(stray.out_ports[0], y.in_ports[0])
        errors = validate_graph(g)
        assert [e.kind for e in errors] == ["foreign_node"]
        assert "another graph" in errors[0]


# ---------------------------------------------------------------------------
# Delays
# ---------------------------------------------------------------------------


class TestDelays:
    def test_detached_read(self) -> None:
        g = Graph(name="g")
        g.nodes.append(new_delay_read_node(None))
        assert _kinds(g) == ["missing_delay_write"]

    def test_read_of_removed_write(self, echo_graph: Graph) -> None:
        write = next(n for n in echo_graph.nodes if n.is_delay_write())
        tap = echo_graph.delay_reads(write)[0]
        echo_graph.nodes.remove(write)
        errors = validate_graph(echo_graph)
        assert any(e.kind == "missing_delay_write" and e.node is tap for e in errors)

    def test_write_read_pair_valid(self) -> None:
        g = Graph(name="g")
        write = g.add_node(new_delay_node())
        g.add_node(new_delay_read_node(write))
        assert validate_graph(g) == []


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestCycles:
    def test_cycle_detected(self) -> None:
        g = Graph(name="g")
        add = g.add_node(new_operator_node("+"))
        mul = g.add_node(new_operator_node("*"))
        g.connect(add.out_ports[0], mul.in_ports[0])
        _wire(mul.out_ports[0], add.in_ports[0])
        errors = validate_graph(g)
        assert [e.kind for e in errors] == ["cycle"]
        assert errors[0] == "Graph contains a cycle through nodes: *, +"

    def test_self_loop(self) -> None:
        g = Graph(name="g")
        add = g.add_node(new_operator_node("+"))
        _wire(add.out_ports[0], add.in_ports[0])
        assert _kinds(g) == ["cycle"]

    def test_delay_feedback_is_not_a_cycle(self, echo_graph: Graph) -> None:
        assert "cycle" not in _kinds(echo_graph)


class TestErrorType:
    def test_behaves_as_string(self) -> None:
        err = GraphValidationError("cycle", "boom")
        assert err == "boom"
        assert err.kind == "cycle"
        assert err.node is None
        assert err.severity == "error"
        assert "; ".join([err, err]) == "boom; boom"
