"""Panned white noise: a stateful generator feeding a two-result node."""

from dsp_patch import (
    Graph,
    arrange,
    generate_source,
    new_node,
    new_operator_node,
    new_port_node,
    validate_graph,
)
from dsp_patch.runtime import WhiteNoise, pan

graph = Graph(name="noise_pan")
level = graph.add_node(new_port_node(False, "level"))
position = graph.add_node(new_port_node(False, "position"))
left = graph.add_node(new_port_node(True, "left"))
right = graph.add_node(new_port_node(True, "right"))

noise = new_node(WhiteNoise)
panner = new_node(pan)
assert noise is not None and panner is not None
graph.add_node(noise)
graph.add_node(panner)
scaled = graph.add_node(new_operator_node("*"))

graph.connect(noise.out_ports[0], scaled.in_ports[0])
graph.connect(level.out_ports[0], scaled.in_ports[1])
graph.connect(scaled.out_ports[0], panner.in_ports[0])
graph.connect(position.out_ports[0], panner.in_ports[1])
graph.connect(panner.out_ports[0], left.in_ports[0])
graph.connect(panner.out_ports[1], right.in_ports[0])

if __name__ == "__main__":
    assert validate_graph(graph) == []
    arrangement = arrange(graph)
    for i, layer in enumerate(arrangement.layers):
        print(i, ["|" if n.is_virtual() else n.label for n in layer])
    print()
    print(generate_source(graph, arrangement.layers))
