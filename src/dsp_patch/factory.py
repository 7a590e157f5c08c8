"""Node construction from capability descriptors and built-in primitives.

A descriptor is a plain function, or a class exposing ``init(self, config:
Config) -> None`` and a ``process`` method. The parameters and results of the
processing callable must all be ``float``. Descriptors of any other shape are
rejected by returning ``None`` from :func:`new_node`, which callers use to
filter candidates during discovery.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import typing
from types import ModuleType
from typing import Protocol

from dsp_patch.errors import UnknownNodeError
from dsp_patch.models import (
    DELAY_NAME,
    INPORT_PREFIX,
    OPERATORS,
    OUTPORT_PREFIX,
    RUNTIME_PKG,
    Node,
    format_number,
)
from dsp_patch.runtime import Config

logger = logging.getLogger(__name__)

# The single numeric kind carried on every port.
NUMERIC_KIND = float

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


# ---------------------------------------------------------------------------
# Descriptor introspection
# ---------------------------------------------------------------------------


def new_node(obj: object, pkg: str | None = None, name: str | None = None) -> Node | None:
    """Build a node from a function or a stateful class, or return None."""
    if pkg is None:
        pkg = getattr(obj, "__module__", None) or ""
    if name is None:
        name = getattr(obj, "__qualname__", None) or getattr(obj, "__name__", "")
    if not pkg or not name:
        return None

    node = Node(pkg=pkg, name=name)
    if inspect.isclass(obj):
        if not _has_init(obj):
            return None
        process = inspect.getattr_static(obj, "process", None)
        if not inspect.isfunction(process):
            return None
        node.stateful = True
        return _init_ports(node, process, method=True)
    if inspect.isfunction(obj):
        return _init_ports(node, obj, method=False)
    return None


def _has_init(cls: type) -> bool:
    init = inspect.getattr_static(cls, "init", None)
    if not inspect.isfunction(init):
        return False
    sig, hints = _introspect(init)
    if sig is None:
        return False
    params = list(sig.parameters.values())[1:]
    if len(params) != 1 or params[0].kind not in _POSITIONAL:
        return False
    return hints.get(params[0].name) is Config and hints.get("return") is type(None)


def _introspect(func: object) -> tuple[inspect.Signature | None, dict[str, object]]:
    try:
        sig = inspect.signature(func)  # type: ignore[arg-type]
        hints = typing.get_type_hints(func)
    except (TypeError, ValueError, NameError, AttributeError):
        return None, {}
    return sig, hints


def _result_kinds(hint: object) -> list[tuple[str, object]] | None:
    """Return (name, type) per result, or None for an unsupported annotation."""
    if hint is type(None):
        return []
    if hint is NUMERIC_KIND:
        return [("", hint)]
    if inspect.isclass(hint) and issubclass(hint, tuple) and hasattr(hint, "_fields"):
        try:
            fields = typing.get_type_hints(hint)
        except NameError:
            return None
        return [(f, fields.get(f)) for f in hint._fields]
    # Single results are either plain floats or one-field NamedTuples.
    if typing.get_origin(hint) is tuple:
        args = typing.get_args(hint)
        if len(args) < 2 or Ellipsis in args:
            return None
        return [("", a) for a in args]
    return None


def _init_ports(node: Node, func: object, *, method: bool) -> Node | None:
    sig, hints = _introspect(func)
    if sig is None or "return" not in hints:
        return None
    params = list(sig.parameters.values())
    if method:
        params = params[1:]
    results = _result_kinds(hints["return"])
    if results is None:
        return None
    if not params and not results:
        return None

    for p in params:
        if p.kind not in _POSITIONAL or hints.get(p.name) is not NUMERIC_KIND:
            return None
        node.add_in_port(p.name)
    for rname, kind in results:
        if kind is not NUMERIC_KIND:
            return None
        node.add_out_port(rname)
    return node


# ---------------------------------------------------------------------------
# Built-in primitives
# ---------------------------------------------------------------------------


def new_port_node(out: bool, name: str = "x") -> Node:
    """A graph terminal: an input (one output port) or an output (one input port)."""
    if out:
        node = Node(name=OUTPORT_PREFIX + name)
        node.add_in_port()
    else:
        node = Node(name=INPORT_PREFIX + name)
        node.add_out_port()
    return node


def new_operator_node(op: str) -> Node:
    if op not in OPERATORS:
        raise ValueError(f"unknown operator {op!r}")
    node = Node(name=op)
    node.add_in_port()
    node.add_in_port()
    node.add_out_port()
    return node


def new_const_node(text: str | float) -> Node:
    if not isinstance(text, str):
        text = format_number(float(text))
    node = Node(name=text)
    if not node.is_const():
        raise ValueError(f"not a numeric constant: {text!r}")
    node.add_out_port()
    return node


def new_delay_node() -> Node:
    """The write half of a delay: writes ``x`` and reads back after ``time``."""
    node = Node(pkg=RUNTIME_PKG, name=DELAY_NAME, stateful=True)
    node.delay_write = node
    node.add_in_port("time")
    node.add_in_port("x")
    node.add_out_port("y")
    return node


def new_delay_read_node(delay: Node | None) -> Node:
    """An extra read tap sharing the state of ``delay``'s write node."""
    node = Node(pkg=RUNTIME_PKG, name=DELAY_NAME, stateful=True)
    if delay is not None:
        node.delay_write = delay.delay_write
    node.add_in_port("time")
    node.add_out_port("y")
    return node


# ---------------------------------------------------------------------------
# Resolution of origin identities
# ---------------------------------------------------------------------------


class SignatureResolver(Protocol):
    def resolve(self, pkg: str, name: str) -> object:
        """Return the descriptor for (pkg, name) or raise UnknownNodeError."""
        ...


class ImportResolver:
    """Resolves identities by importing ``pkg`` and walking ``name``."""

    def resolve(self, pkg: str, name: str) -> object:
        try:
            obj: object = importlib.import_module(pkg)
        except ImportError as e:
            raise UnknownNodeError(pkg, name, str(e)) from e
        for part in name.split("."):
            try:
                obj = getattr(obj, part)
            except AttributeError as e:
                raise UnknownNodeError(pkg, name, str(e)) from e
        return obj


class ManifestResolver:
    """Resolves identities from an explicit registry of descriptors."""

    def __init__(self, *descriptors: object) -> None:
        self._entries: dict[tuple[str, str], object] = {}
        for obj in descriptors:
            self.register(obj)

    def register(self, obj: object, pkg: str | None = None, name: str | None = None) -> None:
        pkg = pkg if pkg is not None else obj.__module__
        name = name if name is not None else obj.__qualname__  # type: ignore[attr-defined]
        self._entries[(pkg, name)] = obj

    def resolve(self, pkg: str, name: str) -> object:
        try:
            return self._entries[(pkg, name)]
        except KeyError:
            raise UnknownNodeError(pkg, name, "not in manifest") from None


def make_node(
    pkg: str,
    name: str,
    resolver: SignatureResolver | None = None,
    *,
    delay_write: bool = False,
) -> Node:
    """Rebuild a node from its origin identity.

    Delay read nodes come back detached; the caller restores ``delay_write``.
    """
    if pkg == "":
        if name.startswith(INPORT_PREFIX):
            return new_port_node(False, name[len(INPORT_PREFIX) :])
        if name.startswith(OUTPORT_PREFIX):
            return new_port_node(True, name[len(OUTPORT_PREFIX) :])
        if name in OPERATORS:
            return new_operator_node(name)
        try:
            return new_const_node(name)
        except ValueError:
            raise UnknownNodeError(pkg, name, "not a built-in primitive") from None

    if pkg == RUNTIME_PKG and name == DELAY_NAME:
        return new_delay_node() if delay_write else new_delay_read_node(None)

    if resolver is None:
        resolver = ImportResolver()
    obj = resolver.resolve(pkg, name)
    node = new_node(obj, pkg=pkg, name=name)
    if node is None:
        raise UnknownNodeError(pkg, name, "not a usable node")
    return node


def discover_nodes(module: str | ModuleType) -> list[Node]:
    """Return a node for every public attribute of ``module`` that is usable as one."""
    if isinstance(module, str):
        module = importlib.import_module(module)
    found: list[Node] = []
    for attr in sorted(vars(module)):
        if attr.startswith("_"):
            continue
        obj = getattr(module, attr)
        if getattr(obj, "__module__", None) != module.__name__:
            continue
        node = new_node(obj)
        if node is not None:
            found.append(node)
    logger.debug("discovered %d nodes in %s", len(found), module.__name__)
    return found
