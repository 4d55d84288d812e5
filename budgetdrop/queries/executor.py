"""
Ledger Queries

Read-only views over a LedgerState: how far along each bucket is, what a
fund's holdings are worth today, and what happened to a bucket over time.

DESIGN DECISION: Queries never change state and never go through the
engine. They read the state they were given and value foreign amounts
through the same RateProvider the engine uses.
"""

import math
from typing import Optional, Union

from pydantic import BaseModel, Field

from budgetdrop.engine.rates import RateProvider
from budgetdrop.engine.settlement import divide
from budgetdrop.models.ledger import (
    Currency,
    DebtBucket,
    Direction,
    FundBucket,
    LedgerState,
    Transaction,
)


class QueryError(Exception):
    """Error during query execution."""
    pass


class BucketProgress(BaseModel):
    """Where a bucket stands against its capacity."""

    bucket_id: str
    kind: str
    current: float
    capacity: Optional[float] = Field(
        default=None,
        description="Target or credit limit; None for an unbounded debt"
    )
    remaining: Optional[float] = Field(
        default=None,
        description="Headroom left before the cap"
    )
    percent: Optional[float] = Field(
        default=None,
        description="current / capacity * 100"
    )
    next_milestone: Optional[float] = None


class TransactionSummary(BaseModel):
    """Totals over a bucket's transaction history."""

    bucket_id: str
    count: int = Field(ge=0)
    total_added: float = 0.0
    total_subtracted: float = 0.0

    @property
    def net(self) -> float:
        return self.total_added - self.total_subtracted


class LedgerQueries:
    """
    Executes read-only queries against a ledger state.

    GUARANTEES:
    - Only reports what is in the state
    - Unknown bucket ids give None (or an empty result), never an estimate
    """

    def __init__(self, state: LedgerState, rates: RateProvider):
        self._state = state
        self._rates = rates

    def bucket_progress(self, bucket_id: str) -> Optional[BucketProgress]:
        bucket = self._state.find_bucket(bucket_id)
        if bucket is None:
            return None

        capacity: Optional[float] = bucket.capacity
        if capacity is not None and math.isinf(capacity):
            capacity = None

        remaining = None
        percent = None
        if capacity is not None:
            remaining = max(capacity - bucket.current, 0.0)
            percent = bucket.current / capacity * 100 if capacity > 0 else 100.0

        return BucketProgress(
            bucket_id=bucket.id,
            kind=bucket.kind,
            current=bucket.current,
            capacity=capacity,
            remaining=remaining,
            percent=percent,
            next_milestone=self._next_milestone(bucket),
        )

    def holdings_value(
        self,
        bucket_id: str,
        in_currency: Optional[Currency] = None,
    ) -> Optional[float]:
        """
        Value a fund's holdings at live rates.

        Holdings in a currency without a usable live rate are skipped.

        Returns:
            Total in in_currency (default: the bucket's own currency),
            or None if the bucket is unknown or not a fund
        """
        bucket = self._state.find_bucket(bucket_id)
        if not isinstance(bucket, FundBucket):
            return None

        total_usd = 0.0
        for currency, amount in bucket.holdings.items():
            rate = self._rates.rate(currency)
            if rate is None or math.isnan(rate):
                continue
            total_usd += amount * rate

        target_currency = in_currency or bucket.currency
        target_rate = self._rates.rate(target_currency)
        if target_rate is None:
            raise QueryError(f"No live rate for {target_currency.value}")
        return divide(total_usd, target_rate)

    def transactions_for_bucket(self, bucket_id: str) -> list[Transaction]:
        """A bucket's transactions, newest first."""
        txns = [t for t in self._state.transactions if t.bucket_id == bucket_id]
        return sorted(txns, key=lambda t: t.timestamp, reverse=True)

    def transaction_summary(self, bucket_id: str) -> TransactionSummary:
        txns = [t for t in self._state.transactions if t.bucket_id == bucket_id]
        return TransactionSummary(
            bucket_id=bucket_id,
            count=len(txns),
            total_added=sum(t.settled_amount for t in txns if t.direction is Direction.ADD),
            total_subtracted=sum(
                t.settled_amount for t in txns if t.direction is Direction.SUBTRACT
            ),
        )

    def staged_value(self, currency: Currency = Currency.USD) -> float:
        """
        Net value of all staged chips at their mint-time rates.

        Withdrawal chips count negative.
        """
        total_usd = sum(
            -chip.usd_value if chip.is_withdrawal else chip.usd_value
            for chip in self._state.chips
        )
        rate = self._rates.rate(currency)
        if rate is None:
            raise QueryError(f"No live rate for {currency.value}")
        return divide(total_usd, rate)

    @staticmethod
    def _next_milestone(bucket: Union[FundBucket, DebtBucket]) -> Optional[float]:
        """
        The next milestone still ahead of the balance.

        Funds move up toward their milestones; debts move down.
        """
        if isinstance(bucket, DebtBucket):
            pending = [
                m for m in bucket.milestones
                if m < bucket.current and m not in bucket.completed_milestones
            ]
            return max(pending) if pending else None
        pending = [m for m in bucket.milestones if m > bucket.current]
        return min(pending) if pending else None
