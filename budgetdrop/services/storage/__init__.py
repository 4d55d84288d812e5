"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger
persistence. Only an in-memory backend ships here; the snapshot codec is
shared by every backend.
"""

from budgetdrop.services.storage.interface import (
    EventStorageInterface,
    SnapshotStorageInterface,
    StorageError,
)
from budgetdrop.services.storage.snapshot import (
    MalformedSnapshotError,
    dump_snapshot,
    load_snapshot,
    upgrade_legacy,
)
from budgetdrop.services.storage.memory import (
    InMemoryEventStorage,
    InMemorySnapshotStorage,
)

__all__ = [
    # Interfaces
    "EventStorageInterface",
    "SnapshotStorageInterface",
    # Exceptions
    "MalformedSnapshotError",
    "StorageError",
    # Codec
    "dump_snapshot",
    "load_snapshot",
    "upgrade_legacy",
    # In-memory implementation
    "InMemoryEventStorage",
    "InMemorySnapshotStorage",
]
