"""Feedback delay with a shared delay line, feedback, and dry/wet mix."""

from dsp_patch import (
    Config,
    Graph,
    generate_source,
    graph_to_dot_file,
    new_delay_node,
    new_delay_read_node,
    new_node,
    new_operator_node,
    new_port_node,
    save_graph,
    validate_graph,
)
from dsp_patch.runtime import mix

graph = Graph(name="fbdelay")
x = graph.add_node(new_port_node(False, "x"))
time = graph.add_node(new_port_node(False, "time"))
feedback = graph.add_node(new_port_node(False, "feedback"))
wet = graph.add_node(new_port_node(False, "wet"))
y = graph.add_node(new_port_node(True, "y"))

dline = graph.add_node(new_delay_node())
tap = graph.add_node(new_delay_read_node(dline))
fb_scaled = graph.add_node(new_operator_node("*"))
write_val = graph.add_node(new_operator_node("+"))
blend = new_node(mix)
assert blend is not None
graph.add_node(blend)

# The tap reads last sample's delay state, so the loop closes through dline.
graph.connect(time.out_ports[0], tap.in_ports[0])
graph.connect(tap.out_ports[0], fb_scaled.in_ports[0])
graph.connect(feedback.out_ports[0], fb_scaled.in_ports[1])
graph.connect(x.out_ports[0], write_val.in_ports[0])
graph.connect(fb_scaled.out_ports[0], write_val.in_ports[1])
graph.connect(time.out_ports[0], dline.in_ports[0])
graph.connect(write_val.out_ports[0], dline.in_ports[1])
graph.connect(x.out_ports[0], blend.in_ports[0])
graph.connect(tap.out_ports[0], blend.in_ports[1])
graph.connect(wet.out_ports[0], blend.in_ports[2])
graph.connect(blend.out_ports[0], y.in_ports[0])

if __name__ == "__main__":
    errors = validate_graph(graph)
    if errors:
        print("Validation errors:")
        for e in errors:
            print(f"  - {e}")
    else:
        print("Graph is valid.")
    print()
    print(f"Saved: {save_graph(graph, 'build')}")
    code = generate_source(graph)
    print(code)

    namespace: dict = {}
    exec(code, namespace)
    fx = namespace["Fbdelay"]()
    fx.init(Config(sample_rate=8.0))
    impulse = [1.0] + [0.0] * 11
    print("Impulse response:", [round(fx.process(s, 0.25, 0.5, 0.5), 4) for s in impulse])

    dot_path = graph_to_dot_file(graph, "build")
    print(f"DOT: {dot_path}")
