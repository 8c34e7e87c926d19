"""Error taxonomy.

Structural errors propagate to the immediate caller and are never retried.
Stale sync tuples and same-value writes are not errors at all: the first
lands in a Signal's conflict log, the second is a no-op.
"""

from __future__ import annotations


class SignalTreeError(Exception):
    """Base class for every error raised by signaltree."""


class PathNotFound(SignalTreeError, LookupError):
    """A path is malformed or addresses structure that cannot be resolved."""

    def __init__(self, path: str, reason: str = "path not found") -> None:
        super().__init__(f"{reason}: {path!r}")
        self.path = path
        self.reason = reason


class InvariantViolation(SignalTreeError, TypeError):
    """Signal-mode traversal reached a node that is not a Signal."""


class SubscriberContractViolation(SignalTreeError, TypeError):
    """A subscriber or read observer is not callable."""


class SignalNotFound(SignalTreeError, LookupError):
    """A registry mutator named a signal that was never created."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Signal {name!r} not found")
        self.name = name


class SignalDisposed(SignalTreeError, RuntimeError):
    """A disposed Signal was asked to change or gain subscribers."""


class SerializationFault(SignalTreeError):
    """A structural walk collected visitor errors and was unwrapped."""

    def __init__(self, errors) -> None:
        errors = tuple(errors)
        paths = ", ".join("/".join(map(str, e.path)) or "<root>" for e in errors)
        super().__init__(f"{len(errors)} node(s) failed to serialize: {paths}")
        self.errors = errors
