"""
Ledger Session

This module ties the components together:
    action -> engine -> new state -> events -> logger/subscribers -> storage

DESIGN DECISION: The session is the engine's single caller.
- It owns the current state; every action replaces it wholesale
- It hands the engine a rate provider bound to that state's rate table,
  so a rate refresh is seen by the very next allocation
- It dispatches events after the state is replaced, never before
- It autosaves after every action that changed something

Calls are strictly serialized; the session is not thread-safe.
"""

from datetime import datetime
from typing import Mapping, Optional, Union

from budgetdrop.audit import LedgerEventLogger
from budgetdrop.config import LedgerSettings, get_settings
from budgetdrop.engine import EngineResult, LedgerEngine, RateTableProvider, initial_state
from budgetdrop.models.ledger import (
    BucketKind,
    Currency,
    LedgerState,
    Polarity,
    RateStatus,
)
from budgetdrop.queries import LedgerQueries
from budgetdrop.services.storage import (
    InMemoryEventStorage,
    SnapshotStorageInterface,
    dump_snapshot,
    load_snapshot,
)


class LedgerSession:
    """
    Runs the full action surface against one ledger.

    Flow per action:
    1. Engine computes (new_state, events)
    2. Session replaces its state
    3. Events are logged and dispatched to subscribers
    4. Snapshot is saved if anything changed and autosave is on
    """

    def __init__(
        self,
        state: Optional[LedgerState] = None,
        storage: Optional[SnapshotStorageInterface] = None,
        event_logger: Optional[LedgerEventLogger] = None,
        settings: Optional[LedgerSettings] = None,
        engine: Optional[LedgerEngine] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._state = state if state is not None else initial_state()
        self._storage = storage
        self._event_logger = event_logger or LedgerEventLogger()
        self._rate_provider = RateTableProvider(lambda: self._state.rate_table)
        self._engine = engine or LedgerEngine(
            rate_provider=self._rate_provider,
            thresholds=self._settings.thresholds,
            default_threshold=self._settings.default_holding_threshold,
        )

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def events(self) -> LedgerEventLogger:
        return self._event_logger

    def queries(self) -> LedgerQueries:
        """Read-only queries over the current state."""
        return LedgerQueries(self._state, self._rate_provider)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def hydrate(self) -> bool:
        """
        Replace the current state with the saved snapshot, if there is one.

        Returns:
            True if a snapshot was loaded

        Raises:
            MalformedSnapshotError: If the stored snapshot is corrupt
        """
        if self._storage is None:
            return False
        saved = self._storage.load()
        if saved is None:
            return False
        self._apply(self._engine.import_snapshot(self._state, saved), save=False)
        return True

    def export_json(self) -> str:
        """Full snapshot as JSON, numbers unformatted."""
        return dump_snapshot(self._state)

    def import_json(self, data: Union[str, bytes, dict], keep_live_rates: bool = True) -> LedgerState:
        """
        Import a snapshot exported earlier.

        If the session already has freshly fetched rates, they are kept in
        place of the snapshot's (possibly stale) rate table.

        Raises:
            MalformedSnapshotError: If the data cannot be decoded
        """
        snapshot = load_snapshot(data)
        if keep_live_rates and self._state.rate_table.status is RateStatus.SUCCESS:
            snapshot = snapshot.model_copy(update={"rate_table": self._state.rate_table})
        return self.import_snapshot(snapshot)

    # =========================================================================
    # ACTIONS
    # =========================================================================

    def mint(
        self,
        amount: float,
        currency: Currency,
        polarity: Polarity = Polarity.DEPOSIT,
        note: Optional[str] = None,
    ) -> EngineResult:
        return self._apply(self._engine.mint(self._state, amount, currency, polarity, note))

    def allocate(self, chip_id: str, bucket_id: str) -> EngineResult:
        return self._apply(self._engine.allocate(self._state, chip_id, bucket_id))

    def remove_chip(self, chip_id: str) -> EngineResult:
        return self._apply(self._engine.remove_chip(self._state, chip_id))

    def clear_chips(self) -> EngineResult:
        return self._apply(self._engine.clear_chips(self._state))

    def convert_chip_polarity(self, chip_id: str, polarity: Polarity) -> EngineResult:
        return self._apply(self._engine.convert_chip_polarity(self._state, chip_id, polarity))

    def add_bucket(
        self,
        name: str,
        kind: BucketKind,
        capacity: Optional[float],
        currency: Currency = Currency.USD,
        milestones: Optional[list[float]] = None,
    ) -> EngineResult:
        return self._apply(
            self._engine.add_bucket(self._state, name, kind, capacity, currency, milestones)
        )

    def reset_bucket(self, bucket_id: str) -> EngineResult:
        return self._apply(self._engine.reset_bucket(self._state, bucket_id))

    def delete_bucket(self, bucket_id: str) -> EngineResult:
        return self._apply(self._engine.delete_bucket(self._state, bucket_id))

    def delete_transaction(self, transaction_id: str) -> EngineResult:
        return self._apply(self._engine.delete_transaction(self._state, transaction_id))

    def amend_transaction(self, transaction_id: str, new_amount: float) -> EngineResult:
        return self._apply(
            self._engine.amend_transaction(self._state, transaction_id, new_amount)
        )

    def import_snapshot(self, snapshot: LedgerState) -> LedgerState:
        self._apply(self._engine.import_snapshot(self._state, snapshot))
        return self._state

    def reset_state(self) -> EngineResult:
        """Back to an empty ledger. Also clears the saved snapshot."""
        result = self._apply(self._engine.reset_state(self._state), save=False)
        if self._storage is not None:
            self._storage.clear()
        return result

    def toggle_sound(self) -> EngineResult:
        return self._apply(self._engine.toggle_sound(self._state))

    def update_rates(
        self,
        rates: Mapping[str, float],
        last_updated: Optional[datetime] = None,
        cached: bool = False,
    ) -> EngineResult:
        return self._apply(self._engine.update_rates(self._state, rates, last_updated, cached))

    def mark_rates_loading(self) -> EngineResult:
        return self._apply(self._engine.mark_rates_loading(self._state))

    def mark_rates_error(self) -> EngineResult:
        return self._apply(self._engine.mark_rates_error(self._state))

    def _apply(self, result: EngineResult, save: bool = True) -> EngineResult:
        self._state = result.state
        self._event_logger.dispatch(result.events)
        if save and result.changed and self._settings.autosave and self._storage is not None:
            self._storage.save(self._state)
        return result


def create_session(
    storage: Optional[SnapshotStorageInterface] = None,
    hydrate: bool = True,
) -> LedgerSession:
    """
    Factory function to create a session with default components.

    Args:
        storage: Snapshot backend. None keeps the ledger in memory only.
        hydrate: Load the saved snapshot, if any, before returning.

    Returns:
        A ready LedgerSession
    """
    settings = get_settings().ledger
    event_logger = LedgerEventLogger(
        InMemoryEventStorage(max_events=settings.event_history_limit)
    )
    session = LedgerSession(storage=storage, event_logger=event_logger, settings=settings)
    if hydrate:
        session.hydrate()
    return session
