"""Command-line interface for dsp-patch."""

from __future__ import annotations

import argparse
import sys

from dsp_patch.arrange import Arrangement, arrange
from dsp_patch.codegen import generate_source, write_source
from dsp_patch.config import Settings, get_settings
from dsp_patch.errors import DspPatchError
from dsp_patch.factory import discover_nodes
from dsp_patch.io import decode_record, graph_path, load_graph
from dsp_patch.log import configure_logging
from dsp_patch.models import Graph, Node
from dsp_patch.validate import validate_graph
from dsp_patch.visualize import graph_to_dot, graph_to_dot_file


def _load_graph(args: argparse.Namespace) -> Graph:
    return load_graph(args.file, directory=args.graph_dir)


def _arrange(graph: Graph, args: argparse.Namespace) -> Arrangement:
    return arrange(graph, strategy=args.strategy, iterations=args.iterations, seed=args.seed)


def _describe(node: Node) -> str:
    ins = ", ".join(p.name or f"in{i}" for i, p in enumerate(node.in_ports))
    outs = ", ".join(p.name or f"out{i}" for i, p in enumerate(node.out_ports)) or "None"
    kind = " [stateful]" if node.stateful else ""
    return f"{node.name}({ins}) -> {outs}{kind}"


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_compile(args: argparse.Namespace) -> int:
    graph = _load_graph(args)
    if args.output:
        path = write_source(graph, args.output)
        print(f"wrote {path}")
    else:
        sys.stdout.write(generate_source(graph))
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    graph = _load_graph(args)
    errors = validate_graph(graph)
    for err in errors:
        print(f"{err.severity}: {err}", file=sys.stderr)
    if any(e.severity == "error" for e in errors):
        return 1
    print("valid")
    return 0


def _cmd_layers(args: argparse.Namespace) -> int:
    graph = _load_graph(args)
    arrangement = _arrange(graph, args)
    for i, layer in enumerate(arrangement.layers):
        labels = ["|" if n.is_virtual() else n.label for n in layer]
        print(f"{i}: {' '.join(labels)}")
    print(f"crossings: {arrangement.crossings}")
    return 0


def _cmd_dot(args: argparse.Namespace) -> int:
    graph = _load_graph(args)
    arrangement = _arrange(graph, args)
    if args.output:
        graph_to_dot_file(graph, args.output, arrangement)
    else:
        sys.stdout.write(graph_to_dot(graph, arrangement))
    return 0


def _cmd_show(args: argparse.Namespace) -> int:
    data = graph_path(args.file, args.graph_dir).read_bytes()
    print(decode_record(data).model_dump_json(indent=2))
    return 0


def _cmd_nodes(args: argparse.Namespace) -> int:
    for node in discover_nodes(args.module):
        print(_describe(node))
    return 0


def _add_arrange_options(p: argparse.ArgumentParser, settings: Settings) -> None:
    p.add_argument(
        "--strategy",
        choices=["local", "exhaustive"],
        default="local",
        help="Crossing minimization strategy",
    )
    p.add_argument(
        "--iterations",
        type=int,
        default=settings.arrange_iterations,
        help="Swap attempts for the local strategy",
    )
    p.add_argument(
        "--seed", type=int, default=settings.arrange_seed, help="Seed for the local strategy"
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for the dsp-patch CLI."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="dsp-patch",
        description="Compile, validate, arrange, and visualize dataflow graphs.",
    )
    parser.add_argument(
        "--graph-dir",
        default=settings.graph_dir,
        help="Directory searched for bare graph names",
    )
    parser.add_argument(
        "--debug", action="store_true", default=settings.debug, help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # compile
    p_compile = sub.add_parser("compile", help="Compile graph to Python")
    p_compile.add_argument("file", help="Graph name or .dsp file")
    p_compile.add_argument("-o", "--output", help="Output directory")

    # validate
    p_validate = sub.add_parser("validate", help="Validate graph structure")
    p_validate.add_argument("file", help="Graph name or .dsp file")

    # layers
    p_layers = sub.add_parser("layers", help="Print the arranged layers")
    p_layers.add_argument("file", help="Graph name or .dsp file")
    _add_arrange_options(p_layers, settings)

    # dot
    p_dot = sub.add_parser("dot", help="Generate DOT visualization")
    p_dot.add_argument("file", help="Graph name or .dsp file")
    p_dot.add_argument("-o", "--output", help="Output directory")
    _add_arrange_options(p_dot, settings)

    # show
    p_show = sub.add_parser("show", help="Dump the stored graph record as JSON")
    p_show.add_argument("file", help="Graph name or .dsp file")

    # nodes
    p_nodes = sub.add_parser("nodes", help="List the nodes a module provides")
    p_nodes.add_argument("module", help="Importable module name")

    args = parser.parse_args(argv)
    configure_logging(args.debug)

    if not args.command:
        parser.print_help(sys.stderr)
        return 1

    try:
        if args.command == "compile":
            return _cmd_compile(args)
        elif args.command == "validate":
            return _cmd_validate(args)
        elif args.command == "layers":
            return _cmd_layers(args)
        elif args.command == "dot":
            return _cmd_dot(args)
        elif args.command == "show":
            return _cmd_show(args)
        elif args.command == "nodes":
            return _cmd_nodes(args)
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ImportError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except DspPatchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0  # pragma: no cover


if __name__ == "__main__":
    sys.exit(main())
