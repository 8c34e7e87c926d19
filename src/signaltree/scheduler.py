"""Notification scheduler — per-owner coalescing of deferred callbacks.

Each owner (a Signal, or any collaborator that wants debounced work) holds
one BatchScheduler. The first schedule() arms a single deferred flush; the
flush calls every distinct pending callback once, in insertion order, with
the value current at flush time. Scheduling the same callback again before
the flush is a no-op.

Where the flush is deferred to, in order of preference:
- the enclosing transaction()/@action, if any,
- the hook installed with set_scheduler(),
- the running asyncio loop (call_soon, the closest thing to a microtask),
- nowhere: with no loop the flush runs immediately and nothing coalesces.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from signaltree import _tracking

logger = logging.getLogger("signaltree.scheduler")

_defer: Callable[[Callable[[], None]], Any] | None = None


def set_scheduler(defer: Callable[[Callable[[], None]], Any] | None) -> None:
    """Install the global deferral hook for scheduled notifications.

    defer(flush) must arrange for flush() to run later on the same thread:
        signaltree.set_scheduler(loop.call_soon)
        signaltree.set_scheduler(app.call_later)

    Pass None to fall back to the running asyncio loop.
    """
    global _defer
    _defer = defer


def _arm(flush: Callable[[], None]) -> None:
    if _tracking.in_batch():
        _tracking.defer_flush(flush)
        return
    if _defer is not None:
        _defer(flush)
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        flush()
    else:
        loop.call_soon(flush)


class BatchScheduler:
    """Coalesces callbacks scheduled before the next flush."""

    __slots__ = ("_pending", "_armed", "_value_getter")

    def __init__(self, value_getter: Callable[[], Any] | None = None) -> None:
        self._pending: dict[Callable, None] = {}
        self._armed = False
        self._value_getter = value_getter

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def armed(self) -> bool:
        return self._armed

    def schedule(self, callback: Callable) -> None:
        self._pending[callback] = None
        if not self._armed:
            self._armed = True
            _arm(self.flush)

    def flush(self) -> None:
        """Run every pending callback once. Safe to call when nothing is pending."""
        batch = list(self._pending)
        self._pending.clear()
        self._armed = False
        if batch:
            logger.debug("Flushing %d scheduled callback(s)", len(batch))
        for callback in batch:
            if self._value_getter is None:
                callback()
            else:
                callback(self._value_getter())

    def cancel(self) -> None:
        """Drop pending callbacks. An already-armed flush becomes a no-op."""
        self._pending.clear()
