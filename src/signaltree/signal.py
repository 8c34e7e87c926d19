"""Signals — observable, revisioned value cells.

A Signal owns one value plus two subscriber sets: change subscribers are
called on every accepted write, read subscribers ("sniffers") on every
.value read. peek() reads without side effects.

Every accepted write advances `rev` and draws a fresh `rev_id`. With
persistence on, the record {domain, name, rev, revId, value} is written to
the injected key-value store under `domain::name`. With synchronization on,
records written to the same key by other replicas are applied through
sync(), a single-register last-writer-wins rule:

    incoming rev >  local rev                       accept
    incoming rev == local rev, incoming rev_id wins  accept, log our old value
    anything else                                    discard, log the tuple

rev_id order is plain string comparison: arbitrary but total and the same
on every replica. This is not a causal merge; there is one scalar rev and
no per-replica vector. The conflict log is diagnostic only and is never
replayed into the value.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from signaltree import _tracking
from signaltree.config import SignalConfig
from signaltree.disposables import DisposableManager
from signaltree.errors import SerializationFault, SignalDisposed, SubscriberContractViolation
from signaltree.scheduler import BatchScheduler
from signaltree.storage import KeyValueStore
from signaltree.walker import StructuralWalker, is_container

logger = logging.getLogger("signaltree.signal")

T = TypeVar("T")
U = TypeVar("U")

Subscriber = Callable[[Any], Any]
Disposer = Callable[[], None]

_SCALARS = (str, bytes, int, float, complex, bool, type(None))


def new_token() -> str:
    return str(uuid.uuid4())


def same_value(a: Any, b: Any) -> bool:
    """Identity for containers and objects, value equality for scalars.

    True and 1 are different values; NaN is the same value as NaN.
    """
    if a is b:
        return True
    if type(a) is not type(b) or not isinstance(a, _SCALARS):
        return False
    if isinstance(a, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


def type_name(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, (set, frozenset)):
        return "set"
    return type(value).__name__


def json_default(obj: Any) -> Any:
    if isinstance(obj, Signal):
        return obj.to_json()
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@dataclass(frozen=True)
class Conflict:
    """One conflict log entry.

    reason is "superseded" when our own value lost a tie-break, "stale" when
    the incoming tuple was behind or lost the tie-break.
    """

    rev: int
    rev_id: str
    value: Any
    reason: str


class Signal(Generic[T]):
    """An observable value with revisioned writes.

    Usage:
        name = Signal("Ada")
        unsubscribe = name.subscribe(print)   # prints "Ada" right away
        name.value = "Grace"                  # prints "Grace"
        name.value = "Grace"                  # same value: nothing happens
        unsubscribe()
    """

    def __init__(
        self,
        value: T | None = None,
        config: SignalConfig | None = None,
        *,
        storage: KeyValueStore | None = None,
        id: str | None = None,
    ) -> None:
        self._config = config or SignalConfig()
        if (self._config.persistence or self._config.synchronization) and storage is None:
            raise ValueError(
                f"Signal {self._config.key!r} needs a storage for persistence/synchronization"
            )
        self._id = id or new_token()
        self._storage = storage
        self._rev = 0
        self._rev_id = new_token()
        self._conflicts: deque[Conflict] = deque(maxlen=self._config.conflict_log_capacity)
        self._value = value
        self._change_subscribers: dict[Subscriber, None] = {}
        self._read_subscribers: dict[Subscriber, None] = {}
        self._disposables = DisposableManager()
        self._scheduler = BatchScheduler(self.peek) if self._config.scheduling else None
        self._disposed = False

        if self._config.persistence:
            existing = storage.get(self.key)
            if existing is None:
                self._persist()
            else:
                self._sync_record(existing)
        if self._config.synchronization:
            self._disposables.add(self.watch())

    # --- identity ---

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def domain(self) -> str:
        return self._config.domain

    @property
    def key(self) -> str:
        return self._config.key

    @property
    def config(self) -> SignalConfig:
        return self._config

    @property
    def rev(self) -> int:
        return self._rev

    @property
    def rev_id(self) -> str:
        return self._rev_id

    @property
    def conflicts(self) -> list[Conflict]:
        """Most recent conflicts, oldest first."""
        return list(self._conflicts)

    @property
    def disposed(self) -> bool:
        return self._disposed

    # --- reading ---

    def peek(self) -> T:
        """Current value, without notifying read subscribers."""
        return self._value

    @property
    def value(self) -> T:
        """Current value. Notifies read subscribers first."""
        for sniffer in list(self._read_subscribers):
            sniffer(self._value)
        _tracking.record_read(self)
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self.set(new_value)

    # --- writing ---

    def set(self, new_value: T, rev: int | None = None, bump: bool = True) -> None:
        """Replace the value and notify. Same-value writes are no-ops.

        An explicit rev is adopted as is; otherwise bump advances rev by one.
        """
        if self._disposed:
            raise SignalDisposed(f"Signal {self.key!r} is disposed")
        if same_value(new_value, self._value):
            return
        if rev is not None:
            self._commit(new_value, rev, new_token())
        elif bump:
            self._commit(new_value, self._rev + 1, new_token())
        else:
            self._commit(new_value, self._rev, self._rev_id)

    def touch(self) -> None:
        """Record an in-place mutation of the current value as a new revision.

        Persists and notifies like set() does for a replaced value.
        """
        if self._disposed:
            raise SignalDisposed(f"Signal {self.key!r} is disposed")
        self._commit(self._value, self._rev + 1, new_token())

    def _commit(self, value: Any, rev: int, rev_id: str) -> None:
        # encode first: a value that cannot be persisted leaves no trace
        content = self._encode(value, rev, rev_id) if self._config.persistence else None
        self._value = value
        self._rev = rev
        self._rev_id = rev_id
        if content is not None:
            self._storage.set(self.key, content)
        self.notify()

    def notify(self) -> None:
        """Call every change subscriber with the value current at call time.

        Subscribers are snapshotted first, so each subscriber present when
        notify() starts runs exactly once even if the set changes meanwhile.
        """
        subscribers = list(self._change_subscribers)
        if self._scheduler is not None:
            for subscriber in subscribers:
                self._scheduler.schedule(subscriber)
        else:
            for subscriber in subscribers:
                subscriber(self._value)

    # --- subscriptions ---

    def subscribe(self, subscriber: Subscriber, autorun: bool = True) -> Disposer:
        """Register a change subscriber. Returns an idempotent unsubscribe.

        With autorun, a subscriber is called once right away unless the
        value is None.
        """
        if not callable(subscriber):
            raise SubscriberContractViolation("Subscriber must be callable")
        if self._disposed:
            raise SignalDisposed(f"Signal {self.key!r} is disposed")
        if autorun and self._value is not None:
            subscriber(self._value)
        self._change_subscribers[subscriber] = None
        return lambda: self.unsubscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._change_subscribers.pop(subscriber, None)

    def sniff(self, sniffer: Subscriber) -> Disposer:
        """Register a read subscriber, called with the value on every .value read."""
        if not callable(sniffer):
            raise SubscriberContractViolation("Read subscriber must be callable")
        if self._disposed:
            raise SignalDisposed(f"Signal {self.key!r} is disposed")
        self._read_subscribers[sniffer] = None
        return lambda: self.unsniff(sniffer)

    def unsniff(self, sniffer: Subscriber) -> None:
        self._read_subscribers.pop(sniffer, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._change_subscribers)

    # --- lifecycle ---

    def add_disposable(self, *items: Any) -> None:
        """Register cleanup to run when this Signal is disposed."""
        if self._disposed:
            raise SignalDisposed(f"Signal {self.key!r} is disposed")
        self._disposables.add(*items)

    def dispose(self) -> None:
        """Drop all subscribers and run owned disposables once. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._read_subscribers.clear()
        self._change_subscribers.clear()
        if self._scheduler is not None:
            self._scheduler.cancel()
        self._disposables.dispose()

    # --- replication ---

    def watch(self) -> Disposer:
        """Apply records other replicas write to this Signal's key."""

        def _on_change(key: str, raw: str | None) -> None:
            if raw is not None:
                self._sync_record(raw)

        return self._storage.watch(self.key, _on_change)

    def sync(self, rev: int, rev_id: str, value: Any) -> bool:
        """Resolve an incoming (rev, rev_id, value) tuple. True if accepted."""
        if self._disposed:
            return False
        if rev > self._rev:
            self._adopt(value, rev, rev_id)
            logger.debug("Accepted %r rev %d from replica", self.key, rev)
            return True
        if rev == self._rev and rev_id == self._rev_id:
            return False
        if rev == self._rev and rev_id > self._rev_id:
            previous, previous_id = self._value, self._rev_id
            self._adopt(value, rev, rev_id)
            self._conflicts.append(Conflict(rev, previous_id, previous, "superseded"))
            logger.debug("Tie at %r rev %d won by incoming %s", self.key, rev, rev_id)
            return True
        self._conflicts.append(Conflict(rev, rev_id, value, "stale"))
        logger.debug("Discarded stale %r rev %d (local rev %d)", self.key, rev, self._rev)
        return False

    def _adopt(self, value: Any, rev: int, rev_id: str) -> None:
        self._rev = rev
        self._rev_id = rev_id
        if not same_value(value, self._value):
            self._value = value
            self.notify()

    def _sync_record(self, raw: str) -> None:
        try:
            record = json.loads(raw)
            rev, rev_id, value = record["rev"], record["revId"], record["value"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Ignoring malformed record for %r: %.80r", self.key, raw)
            return
        self.sync(rev, rev_id, value)

    def record(self) -> dict[str, Any]:
        """The persisted form of this Signal."""
        return self._record(self._value, self._rev, self._rev_id)

    def _record(self, value: Any, rev: int, rev_id: str) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "name": self.name,
            "rev": rev,
            "revId": rev_id,
            "value": self.serialize(value) if self._config.structural else value,
        }

    def _encode(self, value: Any, rev: int, rev_id: str) -> str:
        return json.dumps(self._record(value, rev, rev_id), default=json_default)

    def _persist(self) -> None:
        self._storage.set(self.key, self._encode(self._value, self._rev, self._rev_id))

    # --- serialization ---

    def to_json(self) -> dict[str, Any]:
        return {"key": self.key, "val": self.serialize(self._value)}

    def serialize(self, value: Any, strict: bool = False) -> Any:
        """Tagged form of value: primitives as is, nested Signals as their
        to_json(), containers as {type, key, val}, or {type, key} when this
        Signal is structural.

        Visitor failures are logged and skipped unless strict is set, in
        which case they raise SerializationFault.
        """
        structural = self._config.structural
        nested_errors: list = []

        def visit(key, node, parent, path):
            if isinstance(node, Signal):
                return node.to_json()
            if structural and is_container(node):
                return {"type": type_name(node), "key": key}
            if isinstance(node, (set, frozenset)):
                # tagged members are dicts, which a set cannot hold
                members = [walker.walk(member) for member in node]
                nested_errors.extend(error for member in members for error in member.errors)
                return {"type": type_name(node), "key": key, "val": [m.value for m in members]}
            return None

        def leave(key, original, built, path):
            return {"type": type_name(original), "key": key, "val": built}

        walker = StructuralWalker(visit, leave)
        result = walker.walk(value)
        errors = result.errors + tuple(nested_errors)
        if strict and errors:
            raise SerializationFault(errors)
        return result.value

    # --- combinators ---

    @staticmethod
    def filter(parent: Signal[T], predicate: Callable[[T], bool],
               config: SignalConfig | None = None) -> Signal[T]:
        """Child that takes the parent's values passing predicate."""
        child: Signal[T] = Signal(config=config)

        def _forward(value):
            if predicate(value):
                child.value = value

        child.add_disposable(parent.subscribe(_forward))
        return child

    @staticmethod
    def map(parent: Signal[T], fn: Callable[[T], U],
            config: SignalConfig | None = None) -> Signal[U]:
        """Child holding fn(parent value)."""
        child: Signal[U] = Signal(config=config)
        child.add_disposable(parent.subscribe(lambda value: child.set(fn(value))))
        return child

    @staticmethod
    def combine_latest(*parents: Signal, config: SignalConfig | None = None) -> Signal[list]:
        """Child holding the list of parent values, once none of them is None."""
        child: Signal[list] = Signal(config=config)

        def _update(_=None):
            values = [parent.peek() for parent in parents]
            if not any(value is None for value in values):
                child.value = values

        child.add_disposable([parent.subscribe(_update, autorun=False) for parent in parents])
        _update()
        return child

    # --- views ---

    def readonly(self) -> ReadonlySignal[T]:
        return ReadonlySignal(self)

    def __repr__(self) -> str:
        return f"Signal({self._value!r}, key={self.key!r}, rev={self._rev})"


class ReadonlySignal(Generic[T]):
    """A view exposing reads and subscriptions but no writes."""

    __slots__ = ("_signal",)

    def __init__(self, signal: Signal[T]) -> None:
        self._signal = signal

    @property
    def value(self) -> T:
        return self._signal.value

    def peek(self) -> T:
        return self._signal.peek()

    def subscribe(self, subscriber: Subscriber, autorun: bool = True) -> Disposer:
        return self._signal.subscribe(subscriber, autorun)

    def __repr__(self) -> str:
        return f"ReadonlySignal({self._signal._value!r})"
