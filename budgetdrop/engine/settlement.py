"""
Settlement Arithmetic

Pure functions behind allocation, reversal and amendment:
1. Currency conversion through USD
2. Direction resolution and capping at bucket capacity
3. Fund holdings bookkeeping
4. Milestone detection

Nothing in this module touches LedgerState. The engine composes these
into whole-state transitions.

Conversions follow IEEE semantics: a zero or non-finite rate yields
inf/nan rather than raising, so degenerate rates propagate into balances
instead of aborting the call.
"""

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from budgetdrop.models.ledger import (
    DEFAULT_HOLDING_THRESHOLD,
    BucketKind,
    Chip,
    Currency,
    DebtBucket,
    Direction,
    FundBucket,
    Polarity,
    Transaction,
)


AnyBucket = Union[FundBucket, DebtBucket]


@dataclass(frozen=True)
class Settlement:
    """Outcome of settling one chip against one bucket."""
    direction: Direction
    converted_amount: float
    settled_amount: float
    new_current: float
    remainder_amount: Optional[float] = None


def divide(numerator: float, denominator: float) -> float:
    """Float division that returns inf/nan on a zero denominator."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def is_usable_rate(rate: Optional[float]) -> bool:
    return rate is not None and math.isfinite(rate) and rate > 0


def resolve_direction(kind: Union[BucketKind, str], polarity: Polarity) -> Direction:
    """
    Direction matrix.

    Debt + withdrawal (spending) -> add
    Debt + deposit (payment)     -> subtract
    Fund + deposit               -> add
    Fund + withdrawal            -> subtract
    """
    if kind == BucketKind.DEBT:
        return Direction.ADD if polarity is Polarity.WITHDRAWAL else Direction.SUBTRACT
    return Direction.SUBTRACT if polarity is Polarity.WITHDRAWAL else Direction.ADD


def settle(bucket: AnyBucket, chip: Chip, bucket_rate: float) -> Settlement:
    """
    Convert a chip into bucket currency and cap it at the bucket's bounds.

    The chip side uses its mint-time USD rate; the bucket side uses the
    live rate passed in. Any unconsumed excess is converted back with the
    same two rates so settled + remainder equals the chip's value.
    """
    converted = divide(chip.usd_value, bucket_rate)
    direction = resolve_direction(bucket.kind, chip.polarity)
    current = bucket.current

    settled = converted
    overflow = False
    if direction is Direction.ADD:
        capacity = bucket.capacity
        if current + converted > capacity:
            settled = max(capacity - current, 0.0)
            new_current = max(current, capacity)
            overflow = True
        else:
            new_current = current + converted
    else:
        if converted > current:
            settled = max(current, 0.0)
            new_current = min(current, 0.0)
            overflow = True
        else:
            new_current = current - converted

    remainder = None
    if overflow:
        excess = (converted - settled) * bucket_rate
        remainder_amount = divide(excess, chip.usd_rate_at_mint)
        if remainder_amount > 0:
            remainder = remainder_amount

    return Settlement(
        direction=direction,
        converted_amount=converted,
        settled_amount=settled,
        new_current=new_current,
        remainder_amount=remainder,
    )


# =============================================================================
# HOLDINGS
# =============================================================================

def threshold_for(
    currency: Currency,
    thresholds: Mapping[Currency, float],
    default: float = DEFAULT_HOLDING_THRESHOLD,
) -> float:
    return thresholds.get(currency, default)


def deposit_holdings(holdings: Mapping[Currency, float], chip: Chip) -> dict[Currency, float]:
    """Deposits record the full chip amount, even when settlement was capped."""
    updated = dict(holdings)
    updated[chip.currency] = updated.get(chip.currency, 0.0) + chip.amount
    return updated


def withdraw_holdings(
    holdings: Mapping[Currency, float],
    chip: Chip,
    settled_amount: float,
    current_before: float,
    thresholds: Mapping[Currency, float],
    default_threshold: float = DEFAULT_HOLDING_THRESHOLD,
) -> dict[Currency, float]:
    """
    Reduce holdings for a withdrawal.

    Same-currency holdings are drawn first. If the fund holds none of the
    chip's currency, every entry is reduced by settled / current_before.
    Entries that end at or below their currency threshold are dropped.
    """
    updated = dict(holdings)

    same = updated.get(chip.currency, 0.0)
    if same > 0:
        remaining = same - min(same, chip.amount)
        if remaining <= threshold_for(chip.currency, thresholds, default_threshold):
            del updated[chip.currency]
        else:
            updated[chip.currency] = remaining
        return updated

    if current_before > 0 and settled_amount > 0:
        ratio = min(settled_amount / current_before, 1.0)
        for currency in list(updated):
            reduced = updated[currency] * (1 - ratio)
            if reduced <= threshold_for(currency, thresholds, default_threshold):
                del updated[currency]
            else:
                updated[currency] = reduced
    return updated


def holdings_delta(
    before: Mapping[Currency, float],
    after: Mapping[Currency, float],
) -> dict[Currency, float]:
    """Per-currency change from before to after (removed entries count as 0)."""
    delta = {}
    for currency in set(before) | set(after):
        change = after.get(currency, 0.0) - before.get(currency, 0.0)
        if change != 0:
            delta[currency] = change
    return delta


def recorded_delta(transaction: Transaction) -> Optional[dict[Currency, float]]:
    """
    Holdings change a transaction made, as recorded.

    Transactions without an explicit delta fall back to the original
    chip amount under the original chip currency.
    """
    if transaction.holdings_delta is not None:
        return dict(transaction.holdings_delta)
    if transaction.original_chip_currency and transaction.original_chip_amount:
        signed = transaction.direction.sign * transaction.original_chip_amount
        return {transaction.original_chip_currency: signed}
    return None


def apply_holdings_change(
    holdings: Mapping[Currency, float],
    change: Mapping[Currency, float],
    thresholds: Mapping[Currency, float],
    default_threshold: float = DEFAULT_HOLDING_THRESHOLD,
) -> dict[Currency, float]:
    """
    Apply a per-currency change to holdings.

    Negative changes to an absent entry are ignored. Entries that end at
    or below their threshold are dropped.
    """
    updated = dict(holdings)
    for currency, amount in change.items():
        existing = updated.get(currency)
        if existing is None:
            if amount > threshold_for(currency, thresholds, default_threshold):
                updated[currency] = amount
            continue
        value = existing + amount
        if value <= threshold_for(currency, thresholds, default_threshold):
            del updated[currency]
        else:
            updated[currency] = value
    return updated


# =============================================================================
# MILESTONES
# =============================================================================

def crossed_milestones(
    milestones: list[float],
    completed: list[float],
    old_current: float,
    new_current: float,
) -> list[float]:
    """Milestones m with old_current > m >= new_current, not yet completed."""
    done = set(completed)
    return [
        m for m in milestones
        if old_current > m >= new_current and m not in done
    ]


def clamp_current(value: float, capacity: float) -> float:
    if math.isnan(value):
        return value
    return min(max(value, 0.0), capacity)
