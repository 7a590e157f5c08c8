"""Stateless stereo gain example."""

from dsp_patch import (
    Graph,
    arrange,
    graph_to_dot_file,
    new_operator_node,
    new_port_node,
    save_graph,
    validate_graph,
    write_source,
)

graph = Graph(name="stereo_gain")
in1 = graph.add_node(new_port_node(False, "in1"))
in2 = graph.add_node(new_port_node(False, "in2"))
gain = graph.add_node(new_port_node(False, "gain"))
out1 = graph.add_node(new_port_node(True, "out1"))
out2 = graph.add_node(new_port_node(True, "out2"))

for src, dst in ((in1, out1), (in2, out2)):
    scaled = graph.add_node(new_operator_node("*"))
    graph.connect(src.out_ports[0], scaled.in_ports[0])
    graph.connect(gain.out_ports[0], scaled.in_ports[1])
    graph.connect(scaled.out_ports[0], dst.in_ports[0])

if __name__ == "__main__":
    errors = validate_graph(graph)
    if errors:
        print("Validation errors:")
        for e in errors:
            print(f"  - {e}")
    else:
        print("Graph is valid.")
    print()
    arrangement = arrange(graph)
    print(f"Layers: {len(arrangement.layers)}, crossings: {arrangement.crossings}")
    print(f"Saved: {save_graph(graph, 'build')}")
    path = write_source(graph, "build")
    print(f"\nGenerated: {path}")
    print(path.read_text())
    dot_path = graph_to_dot_file(graph, "build", arrangement)
    print(f"DOT: {dot_path}")
