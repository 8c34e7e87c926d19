"""Tree — a slash-addressed namespace over Signals.

    tree = Tree("my-app")
    tree.write("/app/users.arr/0/name", "Ada")
    tree.read("/app/users.arr").value        # [Signal({'name': Signal('Ada')})]
    tree.designalize()                       # {'app': {'users.arr': [{'name': 'Ada'}]}}

Plain segments are dict scaffolding. Boundary segments (".arr"/".obj") own
a Signal allocated through the tree's SignalRegistry, and everything below
a boundary lives inside that Signal's value as nested Signals. See
signaltree.traversal for the resolution rules.

The serialization toolkit converts between plain data and signal trees:
signalify() wraps every node of plain data in a Signal, designalize()
unwraps a tree or any signal structure back into plain data, and
flatten()/load() replay a designalized tree boundary by boundary.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from signaltree.disposables import DisposableManager
from signaltree.errors import PathNotFound
from signaltree.registry import SignalRegistry
from signaltree.signal import Signal, json_default, new_token
from signaltree.storage import KeyValueStore
from signaltree.traversal import Boundary, ext, is_boundary_segment, resolve
from signaltree.walker import Replace, StructuralWalker, is_container

logger = logging.getLogger("signaltree.tree")

_TREE = object()


class Tree:
    """Path-addressable signal tree for one domain."""

    def __init__(
        self,
        domain: str,
        storage: KeyValueStore | None = None,
        *,
        registry: SignalRegistry | None = None,
        signal_options: dict[str, Any] | None = None,
    ) -> None:
        self._domain = domain
        self._registry = registry if registry is not None else SignalRegistry(domain, storage)
        # structured values are never merged across replicas
        self._signal_options = {"synchronization": False, **(signal_options or {})}
        self._data: dict[str, Any] = {}
        self._disposables = DisposableManager()

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def registry(self) -> SignalRegistry:
        return self._registry

    @property
    def storage(self) -> KeyValueStore:
        return self._registry.storage

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    # --- commands ---

    def read(self, path: str) -> Any:
        """Signal (or raw value) at path, the boundary's Signal for a
        boundary path, or None when any segment is missing. Never creates."""
        node = resolve(self._data, path)
        if isinstance(node, Boundary):
            return node.signal
        return node

    def write(self, path: str, data: Any) -> Signal:
        """Create whatever path needs, then assign data to its Signal."""
        node = resolve(self._data, path, self._allocate)
        if isinstance(node, Boundary):
            node.signal.value = data
            return node.signal
        if isinstance(node, Signal):
            node.value = data
            return node
        raise PathNotFound(path, "path does not address a signal")

    def create(self, path: str, data: Any = None) -> Signal:
        """write() plain data, wrapping each nested node in its own Signal."""
        return self.write(path, self.signalify(data))

    def _allocate(self, value: Any, **options: Any) -> Signal:
        return self._registry.set(new_token(), value, **{**self._signal_options, **options})

    # --- utilities ---

    @staticmethod
    def ext(segment: str) -> str:
        return ext(segment)

    @staticmethod
    def is_boundary_segment(segment: Any) -> bool:
        return is_boundary_segment(segment)

    # --- serialization toolkit ---

    def signalify(self, data: Any, bare: bool = True) -> Any:
        """Wrap every node of plain data in a Signal.

        Leaves become Signals of their value; containers become structural
        Signals of a container of child Signals. With bare, the root itself
        stays unwrapped so it can be handed to write().
        """
        return self._signalify(data, bare, set())

    def _signalify(self, data: Any, bare: bool, active: set[int]) -> Any:
        if is_container(data):
            if id(data) in active:
                raise ValueError("cannot signalify self-referencing data")
            active = active | {id(data)}

        def visit(key, node, parent, path):
            if bare and not path:
                return None
            if is_container(node):
                return self._allocate(self._signalify(node, True, active), structural=True)
            return self._allocate(node)

        return StructuralWalker(visit).walk(data).unwrap()

    def designalize(self, data: Any = _TREE) -> Any:
        """Plain data for the whole tree, or for any structure of Signals."""
        if data is _TREE:
            data = self._data

        def visit(key, node, parent, path):
            if isinstance(node, Boundary):
                return Replace(self.designalize(node.signal.peek()))
            if isinstance(node, Signal):
                return Replace(self.designalize(node.peek()))
            return None

        return StructuralWalker(visit).walk(data).value

    def flatten(self, data: Any = _TREE) -> list[tuple[str, str, Any]]:
        """("create", path, payload) for every outermost boundary segment.

        data defaults to the designalized tree; any designalized tree works.
        """
        if data is _TREE:
            data = self.designalize()
        flattened: list[tuple[str, str, Any]] = []

        def visit(key, node, parent, path):
            if is_boundary_segment(key):
                flattened.append(("create", "/" + "/".join(map(str, path)), node))
                return Replace(node)
            return None

        StructuralWalker(visit).walk(data)
        return flattened

    def to_json(self) -> Any:
        """The tree skeleton with each boundary as {id, ext, signal}."""

        def visit(key, node, parent, path):
            if isinstance(node, Boundary):
                return {"id": node.id, "ext": node.ext, "signal": node.signal.to_json()}
            return None

        return StructuralWalker(visit).walk(self._data).value

    def stringify(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_json(), indent=indent, default=json_default)

    def save(self) -> str:
        """JSON of the designalized tree, suitable for load()."""
        return json.dumps(self.designalize(), default=json_default)

    def persist(self) -> str:
        """save() into storage under the domain key."""
        content = self.save()
        self.storage.set(self._domain, content)
        logger.info("Persisted tree %r (%d bytes)", self._domain, len(content))
        return content

    def hydrated(self) -> Any:
        """The last persisted tree as plain data, or None."""
        content = self.storage.get(self._domain)
        if content is None:
            return None
        return json.loads(content)

    def load(self, data: Any = None) -> int:
        """Recreate boundaries from designalized data (default: hydrated()).

        Returns the number of boundaries restored.
        """
        if data is None:
            data = self.hydrated()
        if data is None:
            return 0
        entries = self.flatten(data)
        for _, path, payload in entries:
            self.create(path, payload)
        logger.info("Loaded %d boundary path(s) into tree %r", len(entries), self._domain)
        return len(entries)

    # --- lifecycle ---

    def clear(self) -> None:
        """Forget every node and Signal, and the persisted snapshot."""
        self.storage.remove(self._domain)
        self._registry.clear(forget=True)
        self._data = {}

    def add_disposable(self, *items: Any) -> None:
        self._disposables.add(*items)

    def dispose(self) -> None:
        self._disposables.dispose()
        self._registry.clear(forget=True)

    def __repr__(self) -> str:
        return f"Tree({self._domain!r}, signals={len(self._registry)})"
