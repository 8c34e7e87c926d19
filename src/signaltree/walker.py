"""Structural walker — cycle-safe deep copy of plain containers.

Descends dicts, lists/tuples and sets, handing every node (root included)
to a visitor before recursing into it. A visitor that returns something
other than None replaces the node and stops descent there (wrap the
replacement in Replace to substitute None itself); that is how
Signals get substituted by their serialized form instead of being walked
generically.

Containers already seen map to the output built for them, so
self-referential input terminates and shared sub-objects stay shared in the
output graph. A leave() replacement only applies to references reached after
the container is finished; back-references made while its own children were
walked still point at the built container.

Set members are rebuilt in hashable form (lists as tuples, sets as
frozensets). A member that cannot be made hashable is kept as is and
reported as a WalkError.

Visitor exceptions never abort a walk. They are logged, collected into the
WalkResult, and the node is treated as if the visitor had returned None.
Callers decide whether collected errors are fatal via WalkResult.unwrap().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, NamedTuple

from signaltree.errors import SerializationFault

logger = logging.getLogger("signaltree.walker")

Path = tuple[Hashable, ...]
Visitor = Callable[[Hashable, Any, Any, Path], Any]
Leave = Callable[[Hashable, Any, Any, Path], Any]


@dataclass(frozen=True)
class WalkError:
    """A visitor failure at one node."""

    path: Path
    cause: BaseException


@dataclass(frozen=True)
class WalkResult:
    """Output of a walk plus the visitor errors collected on the way."""

    value: Any
    errors: tuple[WalkError, ...] = field(default=())

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> Any:
        if self.errors:
            raise SerializationFault(self.errors)
        return self.value


class Replace(NamedTuple):
    """Explicit replacement, for when the replacement may itself be None."""

    value: Any


def is_container(value: Any) -> bool:
    return isinstance(value, (dict, list, tuple, set, frozenset))


def _hashable(value: Any) -> Any:
    """value with lists turned into tuples and sets into frozensets.

    Raises TypeError when something inside is still unhashable.
    """
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_hashable(v) for v in value)
    hash(value)
    return value


class StructuralWalker:
    """Depth-first, parent-before-children walker over plain containers.

    Usage:
        walker = StructuralWalker(lambda key, value, parent, path:
                                  value.to_json() if isinstance(value, Signal) else None)
        result = walker.walk(data)
        result.value   # the rebuilt structure
        result.errors  # WalkError per failing node
    """

    def __init__(self, visitor: Visitor | None = None, leave: Leave | None = None) -> None:
        self.visitor = visitor
        self.leave = leave

    def walk(self, value: Any) -> WalkResult:
        errors: list[WalkError] = []
        seen: dict[int, Any] = {}
        # originals stay referenced for the whole walk so ids are not reused
        keepalive: list[Any] = []
        out = self._visit(None, value, None, (), seen, keepalive, errors)
        return WalkResult(out, tuple(errors))

    # --- internals ---

    def _call_visitor(self, key, value, parent, path, errors) -> Any:
        if self.visitor is None:
            return None
        try:
            return self.visitor(key, value, parent, path)
        except Exception as exc:
            logger.exception("Visitor failed at %r; node walked without replacement", path)
            errors.append(WalkError(path, exc))
            return None

    def _visit(self, key, value, parent, path, seen, keepalive, errors) -> Any:
        replacement = self._call_visitor(key, value, parent, path, errors)
        if isinstance(replacement, Replace):
            return replacement.value
        if replacement is not None:
            return replacement
        return self._descend(key, value, path, seen, keepalive, errors)

    def _descend(self, key, value, path, seen, keepalive, errors) -> Any:
        if not is_container(value):
            return value
        if id(value) in seen:
            return seen[id(value)]
        keepalive.append(value)

        if isinstance(value, dict):
            out: Any = {}
            seen[id(value)] = out
            for k, v in value.items():
                out[k] = self._visit(k, v, value, path + (k,), seen, keepalive, errors)
        elif isinstance(value, (list, tuple)):
            out = []
            seen[id(value)] = out
            for i, v in enumerate(value):
                out.append(self._visit(i, v, value, path + (i,), seen, keepalive, errors))
        else:
            out = set()
            seen[id(value)] = out
            for i, v in enumerate(value):
                item_key = f"[[SetItem:{i}]]"
                item_path = path + (item_key,)
                item = self._visit(item_key, v, value, item_path, seen, keepalive, errors)
                try:
                    item = _hashable(item)
                except TypeError as exc:
                    logger.warning("Set member at %r is unhashable after walking; kept as is", item_path)
                    errors.append(WalkError(item_path, exc))
                    item = v
                out.add(item)

        if self.leave is not None:
            left = self.leave(key, value, out, path)
            if left is not None:
                seen[id(value)] = left
                return left
        return out
