"""Actions and transactions — batched notifications.

Signals with scheduling enabled hand their subscribers to a BatchScheduler.
Wrapping writes in an @action or `with transaction()` holds every armed
flush until the outermost scope exits, so N writes produce one notification
per distinct subscriber even without an event loop.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, ParamSpec, TypeVar

from signaltree._tracking import begin_batch, current_collector, end_batch

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all scheduled notifications inside fn.

    Usage:
        total = Signal(0, SignalConfig(scheduling=True))

        @action
        def add_all(items):
            for item in items:
                total.value = total.peek() + item
            # subscribers see only the final total
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            end_batch()

    return wrapper


@contextmanager
def transaction():
    """Context manager for batching notifications.

    Usage:
        with transaction():
            first.value = "Ada"
            last.value = "Lovelace"
            # scheduled subscribers fire here, once each
    """
    begin_batch()
    try:
        yield
    finally:
        end_batch()


def collect_reads(fn: Callable[[], R]) -> tuple[R, list]:
    """Run fn and report every Signal whose .value it read, in first-read order.

    peek() is not a read for this purpose.

    Usage:
        total, deps = collect_reads(lambda: price.value * quantity.value)
        # deps == [price, quantity]
    """
    collector: list = []
    token = current_collector.set(collector)
    try:
        result = fn()
    finally:
        current_collector.reset(token)
    return result, collector
