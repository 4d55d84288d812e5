"""
Core Data Models for BudgetDrop

These models define the schemas for everything the allocation engine
reads and writes:
1. Chips - staged units of money waiting to be dropped
2. Buckets - Fund and Debt allocation targets
3. Transactions - settled allocations, reversible and amendable
4. LedgerState - the full persisted snapshot

DESIGN DECISION: Chips and Transactions are frozen. The engine never
mutates a model in place; every transition builds new instances with
model_copy so no substructure is shared between two states.

Amounts are plain floats. Conversions cross several rates and the
invariants are stated within floating-point tolerance; degenerate rates
must be able to propagate as inf/nan instead of raising.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """Currencies a chip or bucket can be denominated in."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    RUB = "RUB"
    IDR = "IDR"
    VND = "VND"
    BTC = "BTC"
    USDT = "USDT"


class Polarity(str, Enum):
    """
    Sign of a chip.

    DEPOSIT adds to a fund or pays down a debt.
    WITHDRAWAL takes from a fund or adds spending to a debt.
    """
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class Direction(str, Enum):
    """Effect a transaction had on its bucket's current balance."""
    ADD = "add"
    SUBTRACT = "subtract"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.ADD else -1


class BucketKind(str, Enum):
    FUND = "fund"
    DEBT = "debt"


class RateStatus(str, Enum):
    """Freshness of the rate table."""
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    CACHED = "cached"


# Currency-specific thresholds below which a holding is treated as zero
CURRENCY_THRESHOLDS: dict[Currency, float] = {
    Currency.BTC: 0.00001,
    Currency.USDT: 0.01,
    Currency.USD: 0.01,
    Currency.EUR: 0.01,
    Currency.GBP: 0.01,
    Currency.RUB: 1.0,
    Currency.IDR: 100.0,
    Currency.VND: 100.0,
}

DEFAULT_HOLDING_THRESHOLD = 0.01


# =============================================================================
# CHIPS
# =============================================================================

class Chip(BaseModel):
    """
    A staged unit of money.

    The USD rate is captured when the chip is minted. It is used to value
    the chip at settlement time (chip -> USD); the bucket side of the
    conversion always uses the live rate.

    CRITICAL: amount is NOT validated here. Positive amounts are the
    caller's responsibility; the engine never raises on input.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=lambda: new_id("chip"),
        description="Unique chip ID"
    )
    amount: float = Field(
        ...,
        description="Amount in the chip's own currency"
    )
    currency: Currency
    usd_rate_at_mint: float = Field(
        ...,
        description="Value of one unit of currency in USD when minted"
    )
    polarity: Polarity = Polarity.DEPOSIT
    created_at: datetime = Field(default_factory=utc_now)
    note: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Free-text note carried onto the transaction"
    )

    @property
    def is_withdrawal(self) -> bool:
        return self.polarity is Polarity.WITHDRAWAL

    @property
    def usd_value(self) -> float:
        """Value in USD at the mint-time rate."""
        return self.amount * self.usd_rate_at_mint


# =============================================================================
# BUCKETS
# =============================================================================

class _BucketBase(BaseModel):
    """Fields shared by both bucket kinds."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("bucket"))
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    currency: Currency = Currency.USD
    current: float = Field(
        default=0.0,
        description="Current balance in bucket currency"
    )
    milestones: list[float] = Field(default_factory=list)
    completed_milestones: list[float] = Field(
        default_factory=list,
        description="Milestones crossed while paying down (append-only)"
    )


class FundBucket(_BucketBase):
    """
    An accumulating fund, bounded above by its target.

    holdings tracks how much of each source currency was contributed.
    It approximates current when re-valued at live rates but is only
    maintained incrementally, never recomputed.
    """
    kind: Literal["fund"] = "fund"
    target: float = Field(
        ...,
        ge=0,
        description="Target amount in bucket currency"
    )
    holdings: dict[Currency, float] = Field(default_factory=dict)

    @property
    def capacity(self) -> float:
        return self.target


class DebtBucket(_BucketBase):
    """
    A paydown account.

    Spending (withdrawal chips) increases current up to the credit limit.
    Payments (deposit chips) decrease it to zero. Without a credit limit
    the balance is unbounded above.
    """
    kind: Literal["debt"] = "debt"
    credit_limit: Optional[float] = Field(
        default=None,
        ge=0,
        description="Credit limit in bucket currency (None = unbounded)"
    )

    @property
    def capacity(self) -> float:
        if self.credit_limit is None:
            return float("inf")
        return self.credit_limit


Bucket = Annotated[Union[FundBucket, DebtBucket], Field(discriminator="kind")]


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A settled allocation of one chip onto one bucket.

    Self-describing enough to be reversed without the historical rate
    table: the settled amount is in bucket currency, the original chip
    amount and currency are kept alongside it.

    holdings_delta is the exact per-currency change applied to a fund's
    holdings. It is None for debt buckets and for transactions imported
    from snapshots that predate it.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("txn"))
    chip_id: str
    bucket_id: str
    settled_amount: float = Field(
        ...,
        description="Amount applied to the bucket, in bucket currency"
    )
    direction: Direction
    timestamp: datetime = Field(default_factory=utc_now)
    original_chip_amount: Optional[float] = None
    original_chip_currency: Optional[Currency] = None
    rate_at_settlement: Optional[float] = Field(
        default=None,
        description="Chip's mint-time USD rate used for the settlement"
    )
    note: Optional[str] = None
    holdings_delta: Optional[dict[Currency, float]] = None


# =============================================================================
# RATE TABLE AND STATE
# =============================================================================

class RateTable(BaseModel):
    """
    Currency -> USD multipliers.

    USD is always 1. The table is refreshed by an external service; the
    engine only reads it through a RateProvider.
    """

    rates: dict[str, float] = Field(default_factory=lambda: {"USD": 1.0})
    last_updated: datetime = Field(default_factory=utc_now)
    status: RateStatus = RateStatus.LOADING

    @model_validator(mode='after')
    def pin_usd(self) -> 'RateTable':
        """USD is the base currency and always worth exactly 1."""
        self.rates["USD"] = 1.0
        return self


class Preferences(BaseModel):
    """User preferences persisted with the ledger."""

    sound_enabled: bool = False


class LedgerState(BaseModel):
    """
    The full ledger snapshot.

    This is both the engine's state and the persisted export format.
    """

    buckets: list[Bucket] = Field(default_factory=list)
    chips: list[Chip] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    rate_table: RateTable = Field(default_factory=RateTable)
    preferences: Preferences = Field(default_factory=Preferences)

    def find_chip(self, chip_id: str) -> Optional[Chip]:
        return next((c for c in self.chips if c.id == chip_id), None)

    def find_bucket(self, bucket_id: str) -> Optional[Union[FundBucket, DebtBucket]]:
        return next((b for b in self.buckets if b.id == bucket_id), None)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self.transactions if t.id == transaction_id), None)
