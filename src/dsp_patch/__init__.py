"""dsp-patch: dataflow graphs of signal-processing nodes, arranged and compiled to Python."""

from dsp_patch.arrange import (
    DEFAULT_ITERATIONS,
    DEFAULT_SEED,
    EXHAUSTIVE_LIMIT,
    Arrangement,
    arrange,
    count_crossings,
)
from dsp_patch.codegen import generate_source, write_source
from dsp_patch.errors import (
    DspPatchError,
    GraphFormatError,
    InvalidConnectionError,
    UnknownNodeError,
)
from dsp_patch.factory import (
    ImportResolver,
    ManifestResolver,
    SignatureResolver,
    discover_nodes,
    make_node,
    new_const_node,
    new_delay_node,
    new_delay_read_node,
    new_node,
    new_operator_node,
    new_port_node,
)
from dsp_patch.io import (
    ConnectionRecord,
    GraphRecord,
    NodeRecord,
    decode_graph,
    encode_graph,
    graph_to_record,
    load_graph,
    read_graph,
    record_to_graph,
    save_graph,
    write_graph,
)
from dsp_patch.layers import assign_layers
from dsp_patch.models import Connection, Graph, Node, Port
from dsp_patch.runtime import Config, Delay
from dsp_patch.validate import GraphValidationError, validate_graph
from dsp_patch.visualize import graph_to_dot, graph_to_dot_file

__all__ = [
    "DEFAULT_ITERATIONS",
    "DEFAULT_SEED",
    "EXHAUSTIVE_LIMIT",
    "Arrangement",
    "Config",
    "Connection",
    "ConnectionRecord",
    "Delay",
    "DspPatchError",
    "Graph",
    "GraphFormatError",
    "GraphRecord",
    "GraphValidationError",
    "ImportResolver",
    "InvalidConnectionError",
    "ManifestResolver",
    "Node",
    "NodeRecord",
    "Port",
    "SignatureResolver",
    "UnknownNodeError",
    "arrange",
    "assign_layers",
    "count_crossings",
    "decode_graph",
    "discover_nodes",
    "encode_graph",
    "generate_source",
    "graph_to_dot",
    "graph_to_dot_file",
    "graph_to_record",
    "load_graph",
    "make_node",
    "new_const_node",
    "new_delay_node",
    "new_delay_read_node",
    "new_node",
    "new_operator_node",
    "new_port_node",
    "read_graph",
    "record_to_graph",
    "save_graph",
    "validate_graph",
    "write_graph",
    "write_source",
]
