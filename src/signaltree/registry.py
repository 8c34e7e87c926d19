"""SignalRegistry — the named Signals of one domain, with undo/redo.

set() is idempotent per name: the first call builds the Signal, later
calls write into the same Signal, so a name never changes identity.
get() only looks up.

set_value(), splice() and delete() record a (do, undo) pair of closures.
undo() and redo() move pairs between the two stacks; any new recorded
mutation clears the redo stack.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from signaltree.config import SignalConfig
from signaltree.errors import SignalNotFound
from signaltree.signal import Signal
from signaltree.storage import KeyValueStore, MemoryStorage

logger = logging.getLogger("signaltree.registry")


@dataclass(frozen=True)
class Command:
    do: Callable[[], None]
    undo: Callable[[], None]


class SignalRegistry:
    """Named Signals of one domain."""

    def __init__(
        self,
        domain: str,
        storage: KeyValueStore | None = None,
        history_limit: int | None = None,
    ) -> None:
        self._domain = domain
        self._storage = storage if storage is not None else MemoryStorage().connect()
        self._signals: dict[str, Signal] = {}
        self._undo_stack: deque[Command] = deque(maxlen=history_limit)
        self._redo_stack: list[Command] = []

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def storage(self) -> KeyValueStore:
        return self._storage

    def __len__(self) -> int:
        return len(self._signals)

    def __contains__(self, name: str) -> bool:
        return name in self._signals

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._signals))

    # --- creation and lookup ---

    def set(self, name: str, value: Any = None, **options: Any) -> Signal:
        """Create the Signal for name, or write value into the existing one.

        options override the defaults persistence=True, synchronization=True
        and only apply when the Signal is created.
        """
        signal = self._signals.get(name)
        if signal is None:
            config = SignalConfig(
                domain=self._domain,
                name=name,
                persistence=options.pop("persistence", True),
                synchronization=options.pop("synchronization", True),
                **options,
            )
            signal = Signal(value, config, storage=self._storage)
            self._signals[name] = signal
        signal.value = value
        return signal

    def get(self, name: str) -> Signal | None:
        return self._signals.get(name)

    def clear(self, forget: bool = False) -> None:
        """Dispose every Signal and forget them all.

        With forget, their persisted records are removed from storage as well.
        """
        signals = list(self._signals.values())
        self._signals.clear()
        for signal in signals:
            signal.dispose()
            if forget and signal.config.persistence:
                self._storage.remove(signal.key)
        logger.info("Cleared %d signal(s) in domain %r", len(signals), self._domain)

    def _require(self, name: str) -> Signal:
        signal = self._signals.get(name)
        if signal is None:
            raise SignalNotFound(name)
        return signal

    # --- mutations with undo ---

    def set_value(self, name: str, value: Any) -> None:
        signal = self._require(name)
        old_value = signal.value

        def do_change():
            signal.value = value

        def undo_change():
            signal.value = old_value

        do_change()
        self._push(do_change, undo_change)

    def splice(self, name: str, start: int, count: int, *values: Any) -> list:
        """Remove count items at start and insert values there. Returns the removed items.

        Negative start counts from the end, as with list indexing.
        """
        signal = self._require(name)
        old_value = list(signal.value)
        begin = _clamp_start(start, len(old_value))
        end = begin + max(count, 0)
        removed = old_value[begin:end]

        def do_change():
            items = list(signal.value)
            items[begin:end] = values
            signal.value = items

        def undo_change():
            signal.value = old_value

        do_change()
        self._push(do_change, undo_change)
        return removed

    def delete(self, name: str, key: Any) -> None:
        signal = self._require(name)
        old_value = dict(signal.value)

        def do_change():
            data = dict(signal.value)
            data.pop(key, None)
            signal.value = data

        def undo_change():
            signal.value = old_value

        do_change()
        self._push(do_change, undo_change)

    # --- undo/redo ---

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def undo(self) -> bool:
        if not self._undo_stack:
            return False
        command = self._undo_stack.pop()
        command.undo()
        self._redo_stack.append(command)
        return True

    def redo(self) -> bool:
        if not self._redo_stack:
            return False
        command = self._redo_stack.pop()
        command.do()
        self._undo_stack.append(command)
        return True

    def _push(self, do_change: Callable[[], None], undo_change: Callable[[], None]) -> None:
        self._undo_stack.append(Command(do_change, undo_change))
        self._redo_stack.clear()

    def __repr__(self) -> str:
        return f"SignalRegistry({self._domain!r}, signals={len(self._signals)})"


def _clamp_start(start: int, length: int) -> int:
    if start < 0:
        return max(length + start, 0)
    return min(start, length)
