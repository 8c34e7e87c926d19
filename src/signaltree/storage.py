"""Durable key-value storage and the change broadcast between replicas.

Signals never touch a global store. They receive a KeyValueStore at
construction, so tests can use an in-memory fake and independent trees
never collide on a shared namespace.

MemoryStorage models one device's storage shared by several execution
contexts: each context connects its own StorageArea. A write through one
area is visible to all, and raises a change notification in every other
area watching that key. The writing area is never notified of its own
write.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger("signaltree.storage")

ChangeHandler = Callable[[str, "str | None"], None]
Disposer = Callable[[], None]


@runtime_checkable
class KeyValueStore(Protocol):
    """What Signals, registries and trees need from durable storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def watch(self, key: str, handler: ChangeHandler) -> Disposer:
        """Call handler(key, new_value) when another replica changes key."""
        ...


class MemoryStorage:
    """Shared in-process medium. Hand one StorageArea to each replica."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._areas: list[StorageArea] = []

    def connect(self) -> StorageArea:
        area = StorageArea(self)
        self._areas.append(area)
        return area

    def keys(self) -> list[str]:
        return list(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def _broadcast(self, origin: StorageArea, key: str, value: str | None) -> None:
        for area in list(self._areas):
            if area is not origin:
                area._deliver(key, value)


class StorageArea:
    """One replica's view of a MemoryStorage."""

    def __init__(self, medium: MemoryStorage) -> None:
        self._medium = medium
        self._watchers: dict[str, dict[ChangeHandler, None]] = {}

    @property
    def medium(self) -> MemoryStorage:
        return self._medium

    def get(self, key: str) -> str | None:
        return self._medium._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._medium._data[key] = value
        self._medium._broadcast(self, key, value)

    def remove(self, key: str) -> None:
        if self._medium._data.pop(key, None) is not None:
            self._medium._broadcast(self, key, None)

    def watch(self, key: str, handler: ChangeHandler) -> Disposer:
        if not callable(handler):
            raise TypeError("Storage watcher must be callable")
        self._watchers.setdefault(key, {})[handler] = None

        def _unwatch() -> None:
            handlers = self._watchers.get(key)
            if handlers is not None:
                handlers.pop(handler, None)
                if not handlers:
                    del self._watchers[key]

        return _unwatch

    def watcher_count(self, key: str | None = None) -> int:
        if key is not None:
            return len(self._watchers.get(key, ()))
        return sum(len(h) for h in self._watchers.values())

    def _deliver(self, key: str, value: str | None) -> None:
        handlers = self._watchers.get(key)
        if not handlers:
            return
        logger.debug("Change event for %r delivered to %d watcher(s)", key, len(handlers))
        for handler in list(handlers):
            handler(key, value)
