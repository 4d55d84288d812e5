"""
Abstract Storage Interface

DESIGN DECISION: The ledger engine never persists anything itself.
Persistence sits behind these interfaces so that:
1. The engine stays a pure state-transition function
2. Tests use in-memory storage
3. A browser-local, file or database backend can be swapped in later

The interface is intentionally small: one snapshot slot and an
append-only event log.
"""

from abc import ABC, abstractmethod
from typing import Optional

from budgetdrop.models.events import LedgerEvent
from budgetdrop.models.ledger import LedgerState


class SnapshotStorageInterface(ABC):
    """
    Abstract interface for ledger snapshot storage.

    A backend stores exactly one snapshot: the latest full state.
    """

    @abstractmethod
    def load(self) -> Optional[LedgerState]:
        """
        Load the saved snapshot.

        Returns:
            The saved state, or None if nothing has been saved

        Raises:
            MalformedSnapshotError: If the stored data cannot be decoded
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def save(self, state: LedgerState) -> bool:
        """
        Replace the saved snapshot.

        Args:
            state: The full ledger state to persist

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    def clear(self) -> bool:
        """
        Remove the saved snapshot.

        Returns:
            True if something was removed
        """
        pass


class EventStorageInterface(ABC):
    """
    Abstract interface for ledger event storage.

    Events are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: LedgerEvent) -> bool:
        """
        Append an event to the log.

        Returns:
            True if stored successfully
        """
        pass

    @abstractmethod
    def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[LedgerEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[LedgerEvent]:
        """
        Get the most recent events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass
