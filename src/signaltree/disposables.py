"""Disposable bookkeeping shared by Signals and Trees."""

from __future__ import annotations

from typing import Any, Iterable


def _flatten(items: Iterable[Any]):
    for item in items:
        if isinstance(item, (list, tuple, set)):
            yield from _flatten(item)
        elif item is not None:
            yield item


class DisposableManager:
    """Owns cleanup callbacks and runs each of them exactly once.

    Accepts plain callables and objects with a dispose() method; nested
    lists are flattened.
    """

    __slots__ = ("_disposables",)

    def __init__(self) -> None:
        self._disposables: dict[Any, None] = {}

    def add(self, *items: Any) -> None:
        for item in _flatten(items):
            if not (callable(item) or callable(getattr(item, "dispose", None))):
                raise TypeError(f"Not disposable: {item!r}")
            self._disposables[item] = None

    def dispose(self) -> None:
        batch = list(self._disposables)
        self._disposables.clear()
        for item in batch:
            dispose = getattr(item, "dispose", None)
            if callable(dispose):
                dispose()
            else:
                item()

    def __len__(self) -> int:
        return len(self._disposables)
