"""signaltree: path-addressable reactive state with revisioned replication."""

from importlib.metadata import version as _version

__version__ = _version("signaltree")

from signaltree._tracking import get_pending_count
from signaltree.action import action, transaction, collect_reads
from signaltree.config import SignalConfig
from signaltree.errors import (
    SignalTreeError,
    PathNotFound,
    InvariantViolation,
    SubscriberContractViolation,
    SerializationFault,
    SignalNotFound,
    SignalDisposed,
)
from signaltree.scheduler import BatchScheduler, set_scheduler
from signaltree.signal import Signal, ReadonlySignal, Conflict
from signaltree.registry import SignalRegistry
from signaltree.storage import KeyValueStore, MemoryStorage, StorageArea
from signaltree.traversal import Boundary, Mode
from signaltree.tree import Tree
from signaltree.walker import StructuralWalker, WalkResult, WalkError, Replace
# textual NOT auto-imported — opt-in only

__all__ = [
    "Signal",
    "ReadonlySignal",
    "Conflict",
    "SignalConfig",
    "SignalRegistry",
    "Tree",
    "Boundary",
    "Mode",
    "StructuralWalker",
    "WalkResult",
    "WalkError",
    "Replace",
    "BatchScheduler",
    "set_scheduler",
    "action",
    "transaction",
    "collect_reads",
    "get_pending_count",
    "KeyValueStore",
    "MemoryStorage",
    "StorageArea",
    "SignalTreeError",
    "PathNotFound",
    "InvariantViolation",
    "SubscriberContractViolation",
    "SerializationFault",
    "SignalNotFound",
    "SignalDisposed",
]
