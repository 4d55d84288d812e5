"""Shared fixtures for ledger tests."""

from datetime import datetime, timedelta, timezone

import pytest

from budgetdrop.engine import LedgerEngine, StaticRateProvider
from budgetdrop.models.ledger import (
    Currency,
    DebtBucket,
    FundBucket,
    LedgerState,
    Polarity,
)


class TickingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


TEST_RATES = {
    "USD": 1.0,
    "EUR": 1.1,
    "GBP": 1.25,
    "RUB": 0.011,
    "BTC": 60000.0,
}


@pytest.fixture
def rates() -> StaticRateProvider:
    return StaticRateProvider(TEST_RATES)


@pytest.fixture
def engine(rates) -> LedgerEngine:
    return LedgerEngine(rates, clock=TickingClock())


@pytest.fixture
def fund() -> FundBucket:
    return FundBucket(
        id="stabilisation-fund",
        name="STABILISATION FUND",
        currency=Currency.USD,
        current=340.0,
        target=1500.0,
    )


@pytest.fixture
def debt() -> DebtBucket:
    return DebtBucket(
        id="boa-card",
        name="BOA CARD",
        currency=Currency.USD,
        current=2000.0,
        credit_limit=2600.0,
        milestones=[1500.0, 1000.0, 500.0],
    )


@pytest.fixture
def state(fund, debt) -> LedgerState:
    return LedgerState(buckets=[fund, debt])


@pytest.fixture
def drop(engine):
    """Mint a chip and immediately allocate it. Returns (result, chip)."""

    def _drop(
        state: LedgerState,
        amount: float,
        currency: Currency,
        bucket_id: str,
        polarity: Polarity = Polarity.DEPOSIT,
        note=None,
    ):
        minted = engine.mint(state, amount, currency, polarity, note)
        chip = minted.state.chips[-1]
        return engine.allocate(minted.state, chip.id, bucket_id), chip

    return _drop
