"""Exception types raised by dsp-patch."""

from __future__ import annotations


class DspPatchError(Exception):
    """Base class for dsp-patch errors."""


class UnknownNodeError(DspPatchError, LookupError):
    """An origin identity could not be resolved to a usable node."""

    def __init__(self, pkg: str, name: str, reason: str = "") -> None:
        self.pkg = pkg
        self.name = name
        ident = f"{pkg}.{name}" if pkg else name
        msg = f"unknown node {ident!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class GraphFormatError(DspPatchError, ValueError):
    """Persisted graph data is malformed."""


class InvalidConnectionError(DspPatchError, ValueError):
    """A connection would break a structural invariant of the graph."""
