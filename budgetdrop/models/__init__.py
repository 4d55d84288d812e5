"""
Data Models Package

This package contains all Pydantic models used by BudgetDrop.
Every state the engine produces conforms to these schemas.
"""

from budgetdrop.models.ledger import (
    CURRENCY_THRESHOLDS,
    DEFAULT_HOLDING_THRESHOLD,
    Bucket,
    BucketKind,
    Chip,
    Currency,
    DebtBucket,
    Direction,
    FundBucket,
    LedgerState,
    Polarity,
    Preferences,
    RateStatus,
    RateTable,
    Transaction,
    new_id,
    utc_now,
)
from budgetdrop.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)

__all__ = [
    # Ledger models
    "CURRENCY_THRESHOLDS",
    "DEFAULT_HOLDING_THRESHOLD",
    "Bucket",
    "BucketKind",
    "Chip",
    "Currency",
    "DebtBucket",
    "Direction",
    "FundBucket",
    "LedgerState",
    "Polarity",
    "Preferences",
    "RateStatus",
    "RateTable",
    "Transaction",
    "new_id",
    "utc_now",
    # Event models
    "EventSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
]
