"""
Allocation Ledger Engine

The engine is the only place ledger state changes. Every public method is
a synchronous, total function:

    (state, arguments) -> EngineResult(new_state, events)

GUARANTEES:
- Unknown chip, bucket or transaction ids are silent no-ops: the very
  same state object is returned with no events
- The input state is never mutated; every new state is a deep copy, so
  old and new states share no lists, dicts or nested models
- No I/O, no logging, no retries; side effects are described as events
  and left to the caller

Amounts are NOT validated. Positive amounts are the caller's
responsibility.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Optional, Union

from budgetdrop.engine.rates import RateProvider, currency_code
from budgetdrop.engine.settlement import (
    apply_holdings_change,
    clamp_current,
    crossed_milestones,
    deposit_holdings,
    holdings_delta,
    is_usable_rate,
    recorded_delta,
    settle,
    withdraw_holdings,
)
from budgetdrop.models.events import LedgerEvent, LedgerEventBuilder
from budgetdrop.models.ledger import (
    CURRENCY_THRESHOLDS,
    DEFAULT_HOLDING_THRESHOLD,
    BucketKind,
    Chip,
    Currency,
    DebtBucket,
    Direction,
    FundBucket,
    LedgerState,
    Polarity,
    RateStatus,
    RateTable,
    Transaction,
    utc_now,
)


AnyBucket = Union[FundBucket, DebtBucket]


@dataclass(frozen=True)
class EngineResult:
    """New state plus the events that describe how it was reached."""
    state: LedgerState
    events: list[LedgerEvent] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.events)


def initial_state() -> LedgerState:
    """Empty ledger with a USD-only rate table that is still loading."""
    return LedgerState()


def _derive(state: LedgerState, update: dict) -> LedgerState:
    """New state with update applied. Shares no mutable part with state."""
    return state.model_copy(update=update).model_copy(deep=True)


class LedgerEngine:
    """
    Applies ledger actions to a LedgerState.

    The engine holds no state of its own besides its collaborators:
    the rate provider, holding thresholds and a clock.
    """

    def __init__(
        self,
        rate_provider: RateProvider,
        thresholds: Optional[Mapping[Currency, float]] = None,
        default_threshold: float = DEFAULT_HOLDING_THRESHOLD,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the engine.

        Args:
            rate_provider: Source of live rates, read on every call.
            thresholds: Per-currency near-zero holding thresholds.
                        Defaults to the built-in table.
            default_threshold: Threshold for currencies without an entry.
            clock: Source of timestamps for chips and transactions.
        """
        self._rates = rate_provider
        self._thresholds = dict(thresholds if thresholds is not None else CURRENCY_THRESHOLDS)
        self._default_threshold = default_threshold
        self._clock = clock

    # =========================================================================
    # CHIPS
    # =========================================================================

    def mint(
        self,
        state: LedgerState,
        amount: float,
        currency: Currency,
        polarity: Polarity = Polarity.DEPOSIT,
        note: Optional[str] = None,
    ) -> EngineResult:
        """
        Stage a new chip.

        The chip's USD rate is captured now; a currency missing from the
        rate table is minted at 1.0.
        """
        rate = self._rates.rate(currency)
        chip = Chip(
            amount=amount,
            currency=currency,
            usd_rate_at_mint=rate if rate else 1.0,
            polarity=polarity,
            created_at=self._clock(),
            note=note,
        )
        new_state = _derive(state, {"chips": [*state.chips, chip]})
        event = LedgerEventBuilder.chip_minted(
            chip_id=chip.id,
            amount=chip.amount,
            currency=chip.currency.value,
            polarity=chip.polarity.value,
        )
        return EngineResult(new_state, [event])

    def remove_chip(self, state: LedgerState, chip_id: str) -> EngineResult:
        if state.find_chip(chip_id) is None:
            return EngineResult(state)
        chips = [c for c in state.chips if c.id != chip_id]
        return EngineResult(
            _derive(state, {"chips": chips}),
            [LedgerEventBuilder.chip_removed(chip_id)],
        )

    def clear_chips(self, state: LedgerState) -> EngineResult:
        count = len(state.chips)
        return EngineResult(
            _derive(state, {"chips": []}),
            [LedgerEventBuilder.chips_cleared(count)],
        )

    def convert_chip_polarity(
        self,
        state: LedgerState,
        chip_id: str,
        polarity: Polarity,
    ) -> EngineResult:
        """Replace a staged chip with an identical one of the given polarity."""
        chip = state.find_chip(chip_id)
        if chip is None:
            return EngineResult(state)
        replacement = chip.model_copy(update={"polarity": polarity})
        chips = [replacement if c.id == chip_id else c for c in state.chips]
        return EngineResult(
            _derive(state, {"chips": chips}),
            [LedgerEventBuilder.chip_polarity_converted(chip_id, polarity.value)],
        )

    # =========================================================================
    # ALLOCATION
    # =========================================================================

    def allocate(self, state: LedgerState, chip_id: str, bucket_id: str) -> EngineResult:
        """
        Settle a staged chip against a bucket.

        Flow:
        1. Value the chip in USD at its mint-time rate
        2. Convert to bucket currency at the live rate
        3. Cap at the bucket's bound; excess becomes a remainder chip
        4. Record a transaction
        5. Update fund holdings
        6. Record debt milestones crossed while paying down
        """
        chip = state.find_chip(chip_id)
        bucket = state.find_bucket(bucket_id)
        if chip is None or bucket is None:
            return EngineResult(state)

        events: list[LedgerEvent] = []

        bucket_rate = self._rates.rate(bucket.currency)
        if not is_usable_rate(bucket_rate):
            events.append(LedgerEventBuilder.rate_unavailable(
                currency=currency_code(bucket.currency),
                bucket_id=bucket.id,
            ))
            bucket_rate = math.nan

        outcome = settle(bucket, chip, bucket_rate)
        now = self._clock()

        remainder = None
        if outcome.remainder_amount is not None:
            remainder = Chip(
                amount=outcome.remainder_amount,
                currency=chip.currency,
                usd_rate_at_mint=chip.usd_rate_at_mint,
                polarity=chip.polarity,
                created_at=now,
                note=chip.note,
            )

        update: dict = {"current": outcome.new_current}
        delta = None
        if isinstance(bucket, FundBucket):
            if chip.is_withdrawal:
                new_holdings = withdraw_holdings(
                    bucket.holdings,
                    chip,
                    settled_amount=outcome.settled_amount,
                    current_before=bucket.current,
                    thresholds=self._thresholds,
                    default_threshold=self._default_threshold,
                )
            else:
                new_holdings = deposit_holdings(bucket.holdings, chip)
            delta = holdings_delta(bucket.holdings, new_holdings)
            update["holdings"] = new_holdings

        milestones: list[float] = []
        if isinstance(bucket, DebtBucket) and outcome.direction is Direction.SUBTRACT:
            milestones = crossed_milestones(
                bucket.milestones,
                bucket.completed_milestones,
                old_current=bucket.current,
                new_current=outcome.new_current,
            )
            if milestones:
                update["completed_milestones"] = [*bucket.completed_milestones, *milestones]

        updated_bucket = bucket.model_copy(update=update)

        transaction = Transaction(
            chip_id=chip.id,
            bucket_id=bucket.id,
            settled_amount=outcome.settled_amount,
            direction=outcome.direction,
            timestamp=now,
            original_chip_amount=chip.amount,
            original_chip_currency=chip.currency,
            rate_at_settlement=chip.usd_rate_at_mint,
            note=chip.note,
            holdings_delta=delta,
        )

        chips = [c for c in state.chips if c.id != chip_id]
        if remainder is not None:
            chips.append(remainder)

        new_state = _derive(state, {
            "chips": chips,
            "buckets": self._replace_bucket(state, updated_bucket),
            "transactions": [*state.transactions, transaction],
        })

        events.append(LedgerEventBuilder.chip_allocated(
            transaction_id=transaction.id,
            chip_id=chip.id,
            bucket_id=bucket.id,
            settled_amount=outcome.settled_amount,
            direction=outcome.direction.value,
            new_current=outcome.new_current,
        ))
        if remainder is not None:
            events.append(LedgerEventBuilder.remainder_created(
                chip_id=remainder.id,
                source_chip_id=chip.id,
                amount=remainder.amount,
                currency=remainder.currency.value,
            ))
        events.extend(
            LedgerEventBuilder.milestone_completed(bucket.id, m) for m in milestones
        )
        return EngineResult(new_state, events)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def delete_transaction(self, state: LedgerState, transaction_id: str) -> EngineResult:
        """
        Remove a transaction and reverse its effect on its bucket.

        The staged chip is not resurrected. Fund holdings are restored from
        the recorded delta, not re-derived from rates.
        """
        transaction = state.find_transaction(transaction_id)
        if transaction is None:
            return EngineResult(state)
        bucket = state.find_bucket(transaction.bucket_id)
        if bucket is None:
            return EngineResult(state)

        reversed_current = bucket.current - transaction.direction.sign * transaction.settled_amount
        update: dict = {"current": clamp_current(reversed_current, bucket.capacity)}

        if isinstance(bucket, FundBucket):
            delta = recorded_delta(transaction)
            if delta is not None:
                update["holdings"] = apply_holdings_change(
                    bucket.holdings,
                    {currency: -amount for currency, amount in delta.items()},
                    self._thresholds,
                    self._default_threshold,
                )

        new_state = _derive(state, {
            "buckets": self._replace_bucket(state, bucket.model_copy(update=update)),
            "transactions": [t for t in state.transactions if t.id != transaction_id],
        })
        event = LedgerEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            bucket_id=bucket.id,
            reversed_amount=transaction.settled_amount,
        )
        return EngineResult(new_state, [event])

    def amend_transaction(
        self,
        state: LedgerState,
        transaction_id: str,
        new_amount: float,
    ) -> EngineResult:
        """
        Rescale a transaction's settled amount.

        The difference is applied to the bucket with the transaction's
        original sign. The original chip amount and the fund holdings
        change are rescaled by the same factor, so the historical rate
        table is never needed.

        If the new amount would push the bucket past its bounds, the
        amount is reduced to what fits.
        """
        transaction = state.find_transaction(transaction_id)
        if transaction is None:
            return EngineResult(state)
        bucket = state.find_bucket(transaction.bucket_id)
        if bucket is None:
            return EngineResult(state)

        old_amount = transaction.settled_amount
        if old_amount == 0:
            return EngineResult(state)

        sign = transaction.direction.sign
        requested_current = bucket.current + sign * (new_amount - old_amount)
        new_current = clamp_current(requested_current, bucket.capacity)
        if new_current == requested_current:
            effective_amount = new_amount
        else:
            effective_amount = old_amount + sign * (new_current - bucket.current)

        factor = effective_amount / old_amount
        update: dict = {"current": new_current}
        txn_update: dict = {"settled_amount": effective_amount}

        if transaction.original_chip_amount is not None:
            txn_update["original_chip_amount"] = transaction.original_chip_amount * factor

        if isinstance(bucket, FundBucket):
            delta = recorded_delta(transaction)
            if delta is not None:
                update["holdings"] = apply_holdings_change(
                    bucket.holdings,
                    {currency: amount * (factor - 1) for currency, amount in delta.items()},
                    self._thresholds,
                    self._default_threshold,
                )
                if transaction.holdings_delta is not None:
                    txn_update["holdings_delta"] = {
                        currency: amount * factor for currency, amount in delta.items()
                    }

        milestones: list[float] = []
        paying_down = (
            isinstance(bucket, DebtBucket)
            and transaction.direction is Direction.SUBTRACT
            and new_current < bucket.current
        )
        if paying_down:
            milestones = crossed_milestones(
                bucket.milestones,
                bucket.completed_milestones,
                old_current=bucket.current,
                new_current=new_current,
            )
            if milestones:
                update["completed_milestones"] = [*bucket.completed_milestones, *milestones]

        amended = transaction.model_copy(update=txn_update)
        new_state = _derive(state, {
            "buckets": self._replace_bucket(state, bucket.model_copy(update=update)),
            "transactions": [
                amended if t.id == transaction_id else t for t in state.transactions
            ],
        })
        events = [LedgerEventBuilder.transaction_amended(
            transaction_id=transaction_id,
            old_amount=old_amount,
            new_amount=effective_amount,
        )]
        events.extend(
            LedgerEventBuilder.milestone_completed(bucket.id, m) for m in milestones
        )
        return EngineResult(new_state, events)

    # =========================================================================
    # BUCKETS
    # =========================================================================

    def add_bucket(
        self,
        state: LedgerState,
        name: str,
        kind: BucketKind,
        capacity: Optional[float],
        currency: Currency = Currency.USD,
        milestones: Optional[list[float]] = None,
    ) -> EngineResult:
        """
        Create an empty bucket.

        For a fund, capacity is the target (None means 0). For a debt it is
        the credit limit (None means unbounded).
        """
        bucket: AnyBucket
        if kind == BucketKind.FUND:
            bucket = FundBucket(
                name=name,
                currency=currency,
                target=capacity if capacity is not None else 0.0,
                milestones=list(milestones or []),
            )
        else:
            bucket = DebtBucket(
                name=name,
                currency=currency,
                credit_limit=capacity,
                milestones=list(milestones or []),
            )
        return EngineResult(
            _derive(state, {"buckets": [*state.buckets, bucket]}),
            [LedgerEventBuilder.bucket_added(bucket.id, bucket.name, bucket.kind)],
        )

    def reset_bucket(self, state: LedgerState, bucket_id: str) -> EngineResult:
        """
        Zero a bucket and forget its history.

        CRITICAL: irreversible. Holdings, completed milestones and every
        transaction referencing the bucket are discarded.
        """
        bucket = state.find_bucket(bucket_id)
        if bucket is None:
            return EngineResult(state)

        update: dict = {"current": 0.0, "completed_milestones": []}
        if isinstance(bucket, FundBucket):
            update["holdings"] = {}

        remaining = [t for t in state.transactions if t.bucket_id != bucket_id]
        new_state = _derive(state, {
            "buckets": self._replace_bucket(state, bucket.model_copy(update=update)),
            "transactions": remaining,
        })
        removed = len(state.transactions) - len(remaining)
        return EngineResult(new_state, [LedgerEventBuilder.bucket_reset(bucket_id, removed)])

    def delete_bucket(self, state: LedgerState, bucket_id: str) -> EngineResult:
        if state.find_bucket(bucket_id) is None:
            return EngineResult(state)
        remaining = [t for t in state.transactions if t.bucket_id != bucket_id]
        new_state = _derive(state, {
            "buckets": [b for b in state.buckets if b.id != bucket_id],
            "transactions": remaining,
        })
        removed = len(state.transactions) - len(remaining)
        return EngineResult(new_state, [LedgerEventBuilder.bucket_deleted(bucket_id, removed)])

    # =========================================================================
    # WHOLE STATE
    # =========================================================================

    def import_snapshot(self, state: LedgerState, snapshot: LedgerState) -> EngineResult:
        """Replace the whole state. The snapshot is assumed well-formed."""
        event = LedgerEventBuilder.snapshot_imported(
            buckets=len(snapshot.buckets),
            chips=len(snapshot.chips),
            transactions=len(snapshot.transactions),
        )
        return EngineResult(snapshot.model_copy(deep=True), [event])

    def reset_state(self, state: LedgerState) -> EngineResult:
        return EngineResult(initial_state(), [LedgerEventBuilder.state_reset()])

    def toggle_sound(self, state: LedgerState) -> EngineResult:
        enabled = not state.preferences.sound_enabled
        preferences = state.preferences.model_copy(update={"sound_enabled": enabled})
        return EngineResult(
            _derive(state, {"preferences": preferences}),
            [LedgerEventBuilder.sound_toggled(enabled)],
        )

    def update_rates(
        self,
        state: LedgerState,
        rates: Mapping[str, float],
        last_updated: Optional[datetime] = None,
        cached: bool = False,
    ) -> EngineResult:
        """Install a freshly fetched (or cache-served) rate table."""
        status = RateStatus.CACHED if cached else RateStatus.SUCCESS
        table = RateTable(
            rates={currency_code(k): float(v) for k, v in rates.items()},
            last_updated=last_updated or self._clock(),
            status=status,
        )
        event = LedgerEventBuilder.rates_updated(status.value, sorted(table.rates))
        return EngineResult(_derive(state, {"rate_table": table}), [event])

    def mark_rates_loading(self, state: LedgerState) -> EngineResult:
        return self._set_rate_status(state, RateStatus.LOADING)

    def mark_rates_error(self, state: LedgerState) -> EngineResult:
        return self._set_rate_status(state, RateStatus.ERROR)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _set_rate_status(self, state: LedgerState, status: RateStatus) -> EngineResult:
        table = state.rate_table.model_copy(update={"status": status})
        return EngineResult(
            _derive(state, {"rate_table": table}),
            [LedgerEventBuilder.rates_status_changed(status.value)],
        )

    @staticmethod
    def _replace_bucket(state: LedgerState, updated: AnyBucket) -> list[AnyBucket]:
        return [updated if b.id == updated.id else b for b in state.buckets]
