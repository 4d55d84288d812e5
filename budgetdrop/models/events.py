"""
Ledger Event Models for BudgetDrop

Every engine call returns the events it produced alongside the new state.
This provides:
1. A single channel for side effects (sound, toasts, audit trail)
2. Traceability of every state transition
3. A way to report degenerate input without raising

DESIGN DECISION: The engine never calls a feedback layer itself.
It describes what happened; a dispatcher decides how to react.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budgetdrop.models.ledger import utc_now


class LedgerEventType(str, Enum):
    """
    Types of events the engine emits.

    One event type per observable transition.
    """
    # Chips
    CHIP_MINTED = "chip_minted"
    CHIP_REMOVED = "chip_removed"
    CHIPS_CLEARED = "chips_cleared"
    CHIP_POLARITY_CONVERTED = "chip_polarity_converted"

    # Settlement
    CHIP_ALLOCATED = "chip_allocated"
    REMAINDER_CREATED = "remainder_created"
    MILESTONE_COMPLETED = "milestone_completed"
    RATE_UNAVAILABLE = "rate_unavailable"

    # Transactions
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_AMENDED = "transaction_amended"

    # Buckets
    BUCKET_ADDED = "bucket_added"
    BUCKET_RESET = "bucket_reset"
    BUCKET_DELETED = "bucket_deleted"

    # Whole state
    SNAPSHOT_IMPORTED = "snapshot_imported"
    STATE_RESET = "state_reset"
    RATES_UPDATED = "rates_updated"
    RATES_STATUS_CHANGED = "rates_status_changed"
    SOUND_TOGGLED = "sound_toggled"


class EventSeverity(str, Enum):
    """Severity level for ledger events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """
    A single ledger event.

    Events are immutable descriptions of a transition that already
    happened inside the engine.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: LedgerEventType
    severity: EventSeverity = EventSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'chip', 'bucket', 'transaction')"
    )
    entity_id: Optional[str] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
        }


class LedgerEventBuilder:
    """
    Helper class to build ledger events with common patterns.

    Usage:
        event = LedgerEventBuilder.chip_minted(chip.id, chip.amount, "EUR", "deposit")
        event = LedgerEventBuilder.milestone_completed(bucket_id, 1000.0)
    """

    @staticmethod
    def chip_minted(
        chip_id: str,
        amount: float,
        currency: str,
        polarity: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.CHIP_MINTED,
            entity_type="chip",
            entity_id=chip_id,
            description=f"Minted {polarity} chip: {amount} {currency}",
            details={
                "amount": amount,
                "currency": currency,
                "polarity": polarity,
            },
        )

    @staticmethod
    def chip_removed(chip_id: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.CHIP_REMOVED,
            entity_type="chip",
            entity_id=chip_id,
            description="Staged chip removed",
        )

    @staticmethod
    def chips_cleared(count: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.CHIPS_CLEARED,
            description=f"Cleared {count} staged chips",
            details={"count": count},
        )

    @staticmethod
    def chip_polarity_converted(chip_id: str, polarity: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.CHIP_POLARITY_CONVERTED,
            entity_type="chip",
            entity_id=chip_id,
            description=f"Chip converted to {polarity}",
            details={"polarity": polarity},
        )

    @staticmethod
    def chip_allocated(
        transaction_id: str,
        chip_id: str,
        bucket_id: str,
        settled_amount: float,
        direction: str,
        new_current: float,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.CHIP_ALLOCATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Chip settled on bucket {bucket_id}: {direction} {settled_amount}",
            details={
                "chip_id": chip_id,
                "bucket_id": bucket_id,
                "settled_amount": settled_amount,
                "direction": direction,
                "new_current": new_current,
            },
        )

    @staticmethod
    def remainder_created(
        chip_id: str,
        source_chip_id: str,
        amount: float,
        currency: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.REMAINDER_CREATED,
            entity_type="chip",
            entity_id=chip_id,
            description=f"Remainder chip re-staged: {amount} {currency}",
            details={
                "source_chip_id": source_chip_id,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def milestone_completed(bucket_id: str, milestone: float) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.MILESTONE_COMPLETED,
            entity_type="bucket",
            entity_id=bucket_id,
            description=f"Milestone {milestone} reached",
            details={"milestone": milestone},
        )

    @staticmethod
    def rate_unavailable(currency: str, bucket_id: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.RATE_UNAVAILABLE,
            severity=EventSeverity.WARNING,
            entity_type="bucket",
            entity_id=bucket_id,
            description=f"No usable live rate for {currency}; settlement is not finite",
            details={"currency": currency},
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        bucket_id: str,
        reversed_amount: float,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction reversed on bucket {bucket_id}",
            details={
                "bucket_id": bucket_id,
                "reversed_amount": reversed_amount,
            },
        )

    @staticmethod
    def transaction_amended(
        transaction_id: str,
        old_amount: float,
        new_amount: float,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSACTION_AMENDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transaction amended: {old_amount} -> {new_amount}",
            details={
                "old_amount": old_amount,
                "new_amount": new_amount,
            },
        )

    @staticmethod
    def bucket_added(bucket_id: str, name: str, kind: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.BUCKET_ADDED,
            entity_type="bucket",
            entity_id=bucket_id,
            description=f"Added {kind} bucket: {name}",
            details={"name": name, "kind": kind},
        )

    @staticmethod
    def bucket_reset(bucket_id: str, removed_transactions: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.BUCKET_RESET,
            severity=EventSeverity.WARNING,
            entity_type="bucket",
            entity_id=bucket_id,
            description="Bucket reset to zero",
            details={"removed_transactions": removed_transactions},
        )

    @staticmethod
    def bucket_deleted(bucket_id: str, removed_transactions: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.BUCKET_DELETED,
            severity=EventSeverity.WARNING,
            entity_type="bucket",
            entity_id=bucket_id,
            description="Bucket deleted",
            details={"removed_transactions": removed_transactions},
        )

    @staticmethod
    def snapshot_imported(buckets: int, chips: int, transactions: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SNAPSHOT_IMPORTED,
            description="Ledger snapshot imported",
            details={
                "buckets": buckets,
                "chips": chips,
                "transactions": transactions,
            },
        )

    @staticmethod
    def state_reset() -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STATE_RESET,
            severity=EventSeverity.WARNING,
            description="Ledger reset to initial state",
        )

    @staticmethod
    def rates_updated(status: str, currencies: list[str]) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.RATES_UPDATED,
            description=f"Exchange rates updated ({status})",
            details={"status": status, "currencies": currencies},
        )

    @staticmethod
    def rates_status_changed(status: str) -> LedgerEvent:
        severity = EventSeverity.ERROR if status == "error" else EventSeverity.INFO
        return LedgerEvent(
            event_type=LedgerEventType.RATES_STATUS_CHANGED,
            severity=severity,
            description=f"Exchange rate status: {status}",
            details={"status": status},
        )

    @staticmethod
    def sound_toggled(enabled: bool) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.SOUND_TOGGLED,
            description=f"Sound {'enabled' if enabled else 'disabled'}",
            details={"enabled": enabled},
        )
