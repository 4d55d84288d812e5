"""
In-Memory Storage Implementation

Keeps the snapshot as encoded JSON text rather than as a live object, so
every load goes through the same codec a persistent backend would use
and no state is shared between what was saved and what is loaded.

Suitable for tests and for sessions that do not need to survive a
restart.
"""

from collections import deque
from typing import Optional

from budgetdrop.models.events import LedgerEvent
from budgetdrop.models.ledger import LedgerState
from budgetdrop.services.storage.interface import (
    EventStorageInterface,
    SnapshotStorageInterface,
)
from budgetdrop.services.storage.snapshot import dump_snapshot, load_snapshot


class InMemorySnapshotStorage(SnapshotStorageInterface):
    """Single-slot snapshot store."""

    def __init__(self, initial: Optional[str] = None):
        self._payload: Optional[str] = initial
        self.save_count = 0

    @property
    def payload(self) -> Optional[str]:
        """The raw JSON currently stored."""
        return self._payload

    def load(self) -> Optional[LedgerState]:
        if self._payload is None:
            return None
        return load_snapshot(self._payload)

    def save(self, state: LedgerState) -> bool:
        self._payload = dump_snapshot(state)
        self.save_count += 1
        return True

    def clear(self) -> bool:
        existed = self._payload is not None
        self._payload = None
        return existed


class InMemoryEventStorage(EventStorageInterface):
    """
    Bounded append-only event log.

    Oldest events are discarded once max_events is reached.
    """

    def __init__(self, max_events: int = 500):
        self._events: deque[LedgerEvent] = deque(maxlen=max_events)

    def __len__(self) -> int:
        return len(self._events)

    def append_event(self, event: LedgerEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[LedgerEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_recent_events(self, limit: int = 100) -> list[LedgerEvent]:
        return list(reversed(self._events))[:limit]
