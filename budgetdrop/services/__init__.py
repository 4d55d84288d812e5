"""Services package."""

from budgetdrop.services.storage import (
    EventStorageInterface,
    InMemoryEventStorage,
    InMemorySnapshotStorage,
    MalformedSnapshotError,
    SnapshotStorageInterface,
    StorageError,
    dump_snapshot,
    load_snapshot,
)

__all__ = [
    "EventStorageInterface",
    "InMemoryEventStorage",
    "InMemorySnapshotStorage",
    "MalformedSnapshotError",
    "SnapshotStorageInterface",
    "StorageError",
    "dump_snapshot",
    "load_snapshot",
]
