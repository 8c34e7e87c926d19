"""Per-Signal configuration.

Flags are fixed when a Signal is built and never change afterwards.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

DEFAULT_CONFLICT_LOG_CAPACITY = 16
KEY_SEPARATOR = "::"


@dataclass(frozen=True)
class SignalConfig:
    """Identity and behaviour flags of one Signal.

    structural       serialize only type/key metadata, never the payload
    persistence      mirror every accepted write to the key-value store
    scheduling       batch notifications through the Signal's scheduler
    synchronization  apply writes made to the same key by other replicas
    """

    domain: str = ""
    name: str = "unnamed"
    conflict_log_capacity: int = DEFAULT_CONFLICT_LOG_CAPACITY
    persistence: bool = False
    scheduling: bool = False
    synchronization: bool = False
    structural: bool = False

    def __post_init__(self) -> None:
        if self.conflict_log_capacity < 1:
            raise ValueError("conflict_log_capacity must be at least 1")

    @property
    def key(self) -> str:
        """Storage/broadcast key: domain + separator + name."""
        return f"{self.domain}{KEY_SEPARATOR}{self.name}"

    def replace(self, **changes) -> SignalConfig:
        return dataclasses.replace(self, **changes)
