"""Path resolution — one three-mode automaton shared by reads and writes.

A path is "/"-delimited; leading and trailing slashes are ignored. A
segment ending in ".arr" or ".obj" is a boundary segment: it owns a Signal
holding a list or dict, and the segment after it indexes into that value.

    PLAIN      key into a plain dict node; a boundary key switches to EXTENSION
    EXTENSION  key into the boundary Signal's value; switches to SIGNAL
    SIGNAL     key/index into the current Signal's value; stays SIGNAL

Reads pass allocate=None and stop at the first missing node. Writes pass an
allocator and create what is missing on the way down.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from signaltree.errors import InvariantViolation, PathNotFound
from signaltree.signal import Signal, new_token

logger = logging.getLogger("signaltree.traversal")

BOUNDARY_EXTENSIONS = ("arr", "obj")

_EXTENSION_RE = re.compile(r"\.(\w+)$")

Allocate = Callable[[Any], Signal]


class Mode(enum.Enum):
    PLAIN = "plain"
    EXTENSION = "extension"
    SIGNAL = "signal"


@dataclass(eq=False)
class Boundary:
    """A boundary node: the Signal owned by an .arr/.obj segment."""

    id: str
    ext: str
    signal: Signal


def ext(segment: str) -> str:
    """File-like suffix of a segment, or "" if it has none."""
    match = _EXTENSION_RE.search(segment)
    return match.group(1) if match else ""


def is_boundary_segment(segment: Any) -> bool:
    return isinstance(segment, str) and ext(segment) in BOUNDARY_EXTENSIONS


def empty_for(segment: str) -> list | dict:
    return [] if ext(segment) == "arr" else {}


def parse_path(path: str) -> list[str]:
    trimmed = path.strip("/")
    if not trimmed:
        return []
    segments = trimmed.split("/")
    if "" in segments:
        raise PathNotFound(path, "malformed path")
    return segments


def _index(path: str, key: str) -> int:
    try:
        index = int(key)
    except ValueError:
        raise PathNotFound(path, f"{key!r} is not a list index") from None
    if index < 0:
        raise PathNotFound(path, f"negative list index {key!r}")
    return index


def _child(container: Any, key: str, path: str) -> Any:
    """Existing child of a list/dict, or None when absent."""
    if isinstance(container, list):
        if not key.isdecimal():
            return None
        index = int(key)
        return container[index] if index < len(container) else None
    if isinstance(container, dict):
        return container.get(key)
    return None


def _slot(container: Any, key: str, path: str) -> int | str:
    """Where key would be created inside container."""
    if isinstance(container, list):
        return _index(path, key)
    if isinstance(container, dict):
        return key
    raise PathNotFound(path, f"cannot create {key!r} inside {type(container).__name__}")


def _attach(container: list | dict, slot: int | str, child: Any) -> None:
    if isinstance(container, list) and slot >= len(container):
        container.extend([None] * (slot + 1 - len(container)))
    container[slot] = child


def _access_plain(node: Any, key: str, allocate: Allocate | None, path: str) -> Any:
    if not isinstance(node, dict):
        raise PathNotFound(path, f"{key!r} is below a non-container")
    child = node.get(key)
    if child is None and allocate is not None:
        if is_boundary_segment(key):
            child = Boundary(new_token(), ext(key), allocate(empty_for(key)))
        else:
            child = {}
        node[key] = child
    return child


def _access_extension(node: Any, key: str, allocate: Allocate | None, path: str) -> Any:
    if not isinstance(node, Boundary):
        raise InvariantViolation(
            f"extension step on {type(node).__name__} at {key!r} of {path!r}; expected a boundary"
        )
    return _access_value(node.signal, key, allocate, path)


def _access_signal(node: Any, key: str, allocate: Allocate | None, path: str) -> Any:
    if not isinstance(node, Signal):
        raise InvariantViolation(
            f"signal step on {type(node).__name__} at {key!r} of {path!r}; expected a Signal"
        )
    return _access_value(node, key, allocate, path)


def _access_value(signal: Signal, key: str, allocate: Allocate | None, path: str) -> Any:
    container = signal.peek()
    child = _child(container, key, path)
    if child is None and allocate is not None:
        slot = _slot(container, key, path)
        child = allocate(empty_for(key))
        _attach(container, slot, child)
        # the container grew in place, so no write went through set()
        signal.touch()
    return child


_STEPS = {
    Mode.PLAIN: _access_plain,
    Mode.EXTENSION: _access_extension,
    Mode.SIGNAL: _access_signal,
}


def next_mode(mode: Mode, key: str) -> Mode:
    if mode is Mode.PLAIN:
        return Mode.EXTENSION if is_boundary_segment(key) else Mode.PLAIN
    return Mode.SIGNAL


def resolve(root: dict, path: str, allocate: Allocate | None = None) -> Any:
    """Fold path over root. Returns the terminal node, or None on a read miss."""
    node: Any = root
    mode = Mode.PLAIN
    for segment in parse_path(path):
        node = _STEPS[mode](node, segment, allocate, path)
        if node is None:
            return None
        mode = next_mode(mode, segment)
        logger.debug("%s -> %s via %r", path, mode.value, segment)
    return node
