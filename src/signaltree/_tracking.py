"""Batch and read-tracking state shared by the scheduler and Signals.

Batching: inside an @action or `with transaction()`, scheduler flushes that
would otherwise be deferred accumulate here and run once when the outermost
scope exits.

Read tracking: while collect_reads() is evaluating, every Signal.value read
is appended to the current collector.
"""

from __future__ import annotations

import contextvars
from typing import Callable

# Collector list for the evaluation in progress, if any.
current_collector: contextvars.ContextVar[list | None] = contextvars.ContextVar(
    "current_collector", default=None
)

# Batch depth counter. When > 0, scheduler flushes are deferred.
_batch_depth: int = 0

# Flushes requested during a batch, in request order.
_pending: dict[Callable[[], None], None] = {}


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, run pending flushes."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


def in_batch() -> bool:
    return _batch_depth > 0


def defer_flush(flush: Callable[[], None]) -> None:
    """Queue a scheduler flush until the outermost batch exits."""
    _pending[flush] = None


def _flush_pending() -> None:
    """Run pending flushes. Handles flushes requested while flushing."""
    while _pending:
        batch = list(_pending)
        _pending.clear()
        for flush in batch:
            flush()


def record_read(signal) -> None:
    collector = current_collector.get()
    if collector is not None and not any(s is signal for s in collector):
        collector.append(signal)


def get_pending_count() -> int:
    """Number of flushes waiting for the batch to close. Useful for testing."""
    return len(_pending)
