"""
Tests for minting and allocating chips.

Covers conversion, capping, remainder chips, fund holdings and debt
milestones.
"""

import math

import pytest

from budgetdrop.engine import LedgerEngine, RateTableProvider, StaticRateProvider, resolve_direction
from budgetdrop.models.events import LedgerEventType
from budgetdrop.models.ledger import (
    BucketKind,
    Currency,
    DebtBucket,
    Direction,
    FundBucket,
    LedgerState,
    Polarity,
    RateTable,
)


def event_types(result):
    return [e.event_type for e in result.events]


class TestMint:
    """Tests for staging chips."""

    def test_mint_captures_current_rate(self, engine, state):
        result = engine.mint(state, 100, Currency.EUR, note="salary")
        chip = result.state.chips[0]
        assert chip.amount == 100
        assert chip.currency == Currency.EUR
        assert chip.usd_rate_at_mint == 1.1
        assert chip.polarity == Polarity.DEPOSIT
        assert chip.note == "salary"
        assert event_types(result) == [LedgerEventType.CHIP_MINTED]

    def test_mint_unknown_rate_defaults_to_one(self, state):
        engine = LedgerEngine(StaticRateProvider({"USD": 1.0}))
        chip = engine.mint(state, 50000, Currency.VND).state.chips[0]
        assert chip.usd_rate_at_mint == 1.0

    def test_mint_does_not_touch_input_state(self, engine, state):
        engine.mint(state, 10, Currency.USD)
        assert state.chips == []

    def test_mint_withdrawal(self, engine, state):
        chip = engine.mint(state, 5, Currency.USD, Polarity.WITHDRAWAL).state.chips[0]
        assert chip.is_withdrawal


class TestDirectionMatrix:

    @pytest.mark.parametrize("kind,polarity,expected", [
        (BucketKind.DEBT, Polarity.WITHDRAWAL, Direction.ADD),
        (BucketKind.DEBT, Polarity.DEPOSIT, Direction.SUBTRACT),
        (BucketKind.FUND, Polarity.DEPOSIT, Direction.ADD),
        (BucketKind.FUND, Polarity.WITHDRAWAL, Direction.SUBTRACT),
    ])
    def test_direction(self, kind, polarity, expected):
        assert resolve_direction(kind, polarity) is expected


class TestFundDeposits:
    """Currency chip allocation onto a fund."""

    def test_usd_then_eur_deposit(self, drop, state):
        result, _ = drop(state, 100, Currency.USD, "stabilisation-fund", note="Test salary payment")
        fund = result.state.find_bucket("stabilisation-fund")
        assert fund.current == 440
        assert fund.holdings[Currency.USD] == 100
        assert result.state.transactions[0].note == "Test salary payment"

        result, _ = drop(result.state, 100, Currency.EUR, "stabilisation-fund")
        fund = result.state.find_bucket("stabilisation-fund")
        assert fund.current == pytest.approx(550)
        assert fund.holdings[Currency.EUR] == 100
        assert fund.holdings[Currency.USD] == 100

    def test_chip_is_consumed(self, drop, state):
        result, chip = drop(state, 100, Currency.USD, "stabilisation-fund")
        assert result.state.find_chip(chip.id) is None
        assert result.state.chips == []

    def test_transaction_records_original_chip(self, drop, state):
        result, chip = drop(state, 100, Currency.EUR, "stabilisation-fund")
        txn = result.state.transactions[0]
        assert txn.chip_id == chip.id
        assert txn.bucket_id == "stabilisation-fund"
        assert txn.direction is Direction.ADD
        assert txn.settled_amount == pytest.approx(110)
        assert txn.original_chip_amount == 100
        assert txn.original_chip_currency == Currency.EUR
        assert txn.rate_at_settlement == 1.1
        assert txn.holdings_delta == {Currency.EUR: 100}

    def test_overflow_caps_at_target_and_creates_remainder(self, drop, state):
        fund = state.find_bucket("stabilisation-fund")
        needed = fund.target - fund.current
        assert needed == 1160

        result, chip = drop(state, needed + 840, Currency.USD, "stabilisation-fund")
        fund = result.state.find_bucket("stabilisation-fund")
        assert fund.current == fund.target

        assert len(result.state.chips) == 1
        remainder = result.state.chips[0]
        assert remainder.amount == 840
        assert remainder.currency == Currency.USD
        assert remainder.polarity == Polarity.DEPOSIT
        assert remainder.id != chip.id

        # holdings keep the full chip amount
        assert fund.holdings[Currency.USD] == 2000
        assert result.state.transactions[0].settled_amount == 1160
        assert LedgerEventType.REMAINDER_CREATED in event_types(result)

    def test_full_fund_settles_nothing(self, drop, state):
        result, _ = drop(state, 1160, Currency.USD, "stabilisation-fund")
        result, _ = drop(result.state, 50, Currency.USD, "stabilisation-fund")
        fund = result.state.find_bucket("stabilisation-fund")
        assert fund.current == 1500
        assert result.state.transactions[-1].settled_amount == 0
        assert result.state.chips[0].amount == 50

    def test_remainder_keeps_currency_and_rate(self, drop, state):
        result, chip = drop(state, 2000, Currency.EUR, "stabilisation-fund")
        remainder = result.state.chips[0]
        assert remainder.currency == Currency.EUR
        assert remainder.usd_rate_at_mint == chip.usd_rate_at_mint
        assert remainder.amount == pytest.approx(2000 - 1160 / 1.1)


class TestFundWithdrawals:
    """Withdrawal chips on funds: same currency first, then proportional."""

    def test_same_currency_withdrawal(self, drop):
        fund = FundBucket(
            id="f", name="F", current=210.0, target=1000.0,
            holdings={Currency.USD: 100.0, Currency.EUR: 100.0},
        )
        result, _ = drop(LedgerState(buckets=[fund]), 40, Currency.USD, "f", Polarity.WITHDRAWAL)
        updated = result.state.find_bucket("f")
        assert updated.current == pytest.approx(170)
        assert updated.holdings[Currency.USD] == pytest.approx(60)
        assert updated.holdings[Currency.EUR] == 100
        assert result.state.transactions[0].direction is Direction.SUBTRACT

    def test_proportional_withdrawal(self, drop):
        fund = FundBucket(
            id="f", name="F", current=160.0, target=1000.0,
            holdings={Currency.EUR: 100.0, Currency.GBP: 40.0},
        )
        result, _ = drop(LedgerState(buckets=[fund]), 40, Currency.USD, "f", Polarity.WITHDRAWAL)
        updated = result.state.find_bucket("f")
        assert updated.current == pytest.approx(120)
        assert updated.holdings[Currency.EUR] == pytest.approx(75)
        assert updated.holdings[Currency.GBP] == pytest.approx(30)
        assert Currency.USD not in updated.holdings

    def test_withdrawing_whole_holding_removes_entry(self, drop):
        fund = FundBucket(
            id="f", name="F", current=100.0, target=1000.0,
            holdings={Currency.USD: 100.0},
        )
        result, _ = drop(LedgerState(buckets=[fund]), 100, Currency.USD, "f", Polarity.WITHDRAWAL)
        updated = result.state.find_bucket("f")
        assert updated.current == 0
        assert updated.holdings == {}

    def test_short_same_currency_holding_does_not_spill_over(self, drop):
        """A same-currency holding smaller than the chip is emptied; others stay."""
        fund = FundBucket(
            id="f", name="F", current=140.0, target=1000.0,
            holdings={Currency.USD: 30.0, Currency.EUR: 100.0},
        )
        result, _ = drop(LedgerState(buckets=[fund]), 50, Currency.USD, "f", Polarity.WITHDRAWAL)
        updated = result.state.find_bucket("f")
        assert updated.current == pytest.approx(90)
        assert updated.holdings == {Currency.EUR: 100.0}

    def test_overdraw_floors_at_zero(self, drop, state):
        result, _ = drop(state, 500, Currency.USD, "stabilisation-fund", Polarity.WITHDRAWAL)
        fund = result.state.find_bucket("stabilisation-fund")
        assert fund.current == 0
        remainder = result.state.chips[0]
        assert remainder.amount == pytest.approx(160)
        assert remainder.polarity == Polarity.WITHDRAWAL


class TestDebtAllocation:

    def test_spending_increases_debt(self, drop, state):
        result, _ = drop(state, 100, Currency.USD, "boa-card", Polarity.WITHDRAWAL)
        debt = result.state.find_bucket("boa-card")
        assert debt.current == 2100
        assert result.state.transactions[0].direction is Direction.ADD
        assert result.state.transactions[0].holdings_delta is None

    def test_spending_past_credit_limit(self, drop, state):
        headroom = 2600 - 2000
        result, _ = drop(state, headroom + 400, Currency.USD, "boa-card", Polarity.WITHDRAWAL)
        debt = result.state.find_bucket("boa-card")
        assert debt.current == debt.credit_limit
        assert len(result.state.chips) == 1
        remainder = result.state.chips[0]
        assert remainder.amount == pytest.approx(400)
        assert remainder.polarity == Polarity.WITHDRAWAL

    def test_payment_reduces_debt(self, drop, state):
        result, _ = drop(state, 300, Currency.USD, "boa-card")
        assert result.state.find_bucket("boa-card").current == 1700
        assert result.state.transactions[0].direction is Direction.SUBTRACT

    def test_overpayment_creates_deposit_remainder(self, drop, state):
        result, _ = drop(state, 2500, Currency.USD, "boa-card")
        assert result.state.find_bucket("boa-card").current == 0
        remainder = result.state.chips[0]
        assert remainder.amount == pytest.approx(500)
        assert remainder.polarity == Polarity.DEPOSIT

    def test_unbounded_debt_never_overflows(self, drop):
        debt = DebtBucket(id="d", name="D", current=0.0)
        result, _ = drop(LedgerState(buckets=[debt]), 1e9, Currency.USD, "d", Polarity.WITHDRAWAL)
        assert result.state.find_bucket("d").current == 1e9
        assert result.state.chips == []

    def test_cross_currency_conversion(self, drop):
        debt = DebtBucket(id="tinkoff", name="TINKOFF", currency=Currency.RUB,
                          current=0.0, credit_limit=474000.0)
        result, _ = drop(LedgerState(buckets=[debt]), 100, Currency.EUR, "tinkoff", Polarity.WITHDRAWAL)
        assert result.state.find_bucket("tinkoff").current == pytest.approx(110 / 0.011)


class TestMilestones:

    def test_paydown_crosses_milestones(self, drop, state):
        result, _ = drop(state, 1100, Currency.USD, "boa-card")
        debt = result.state.find_bucket("boa-card")
        assert debt.current == 900
        assert debt.completed_milestones == [1500.0, 1000.0]
        assert event_types(result).count(LedgerEventType.MILESTONE_COMPLETED) == 2

    def test_landing_exactly_on_milestone_completes_it(self, drop, state):
        result, _ = drop(state, 500, Currency.USD, "boa-card")
        assert result.state.find_bucket("boa-card").completed_milestones == [1500.0]

    def test_milestones_are_not_repeated_or_removed(self, drop, state):
        result, _ = drop(state, 600, Currency.USD, "boa-card")
        assert result.state.find_bucket("boa-card").completed_milestones == [1500.0]

        # spending back above the milestone keeps it completed
        result, _ = drop(result.state, 300, Currency.USD, "boa-card", Polarity.WITHDRAWAL)
        debt = result.state.find_bucket("boa-card")
        assert debt.current == 1700
        assert debt.completed_milestones == [1500.0]

        # crossing it again does not add a duplicate
        result, _ = drop(result.state, 300, Currency.USD, "boa-card")
        debt = result.state.find_bucket("boa-card")
        assert debt.completed_milestones == [1500.0]
        assert LedgerEventType.MILESTONE_COMPLETED not in event_types(result)

    def test_fund_deposits_do_not_complete_milestones(self, drop):
        fund = FundBucket(id="f", name="F", current=0.0, target=4000.0,
                          milestones=[1000.0, 2000.0])
        result, _ = drop(LedgerState(buckets=[fund]), 2500, Currency.USD, "f")
        assert result.state.find_bucket("f").completed_milestones == []


class TestInvalidReferences:

    def test_unknown_chip_is_noop(self, engine, state):
        result = engine.allocate(state, "chip-missing", "stabilisation-fund")
        assert result.state is state
        assert result.events == []
        assert not result.changed

    def test_unknown_bucket_is_noop(self, engine, state):
        minted = engine.mint(state, 10, Currency.USD).state
        result = engine.allocate(minted, minted.chips[0].id, "bucket-missing")
        assert result.state is minted
        assert result.events == []


class TestConservation:
    """settled (back in chip currency) + remainder == chip amount."""

    @pytest.mark.parametrize("amount,currency,bucket_id,polarity", [
        (2000, Currency.USD, "stabilisation-fund", Polarity.DEPOSIT),
        (5000, Currency.EUR, "stabilisation-fund", Polarity.DEPOSIT),
        (900, Currency.GBP, "stabilisation-fund", Polarity.WITHDRAWAL),
        (3000, Currency.EUR, "boa-card", Polarity.DEPOSIT),
        (0.05, Currency.BTC, "boa-card", Polarity.WITHDRAWAL),
        (10, Currency.EUR, "stabilisation-fund", Polarity.DEPOSIT),
    ])
    def test_value_is_conserved(self, drop, state, rates, amount, currency, bucket_id, polarity):
        result, chip = drop(state, amount, currency, bucket_id, polarity)
        txn = result.state.transactions[-1]
        bucket = result.state.find_bucket(bucket_id)
        settled_in_chip_currency = (
            txn.settled_amount * rates.rate(bucket.currency) / chip.usd_rate_at_mint
        )
        remainder = sum(c.amount for c in result.state.chips)
        assert settled_in_chip_currency + remainder == pytest.approx(amount)

    def test_cap_invariant_over_many_drops(self, drop, state):
        for _ in range(10):
            result, _ = drop(state, 400, Currency.EUR, "stabilisation-fund")
            state = result.state
            fund = state.find_bucket("stabilisation-fund")
            assert fund.current <= fund.target

            result, _ = drop(state, 250, Currency.USD, "boa-card", Polarity.WITHDRAWAL)
            state = result.state
            debt = state.find_bucket("boa-card")
            assert debt.current <= debt.credit_limit


class TestRates:

    def test_bucket_side_uses_live_rate(self, fund):
        holder = {"table": RateTable(rates={"USD": 1.0, "EUR": 1.1})}
        engine = LedgerEngine(RateTableProvider(lambda: holder["table"]))
        eur_fund = fund.model_copy(update={"currency": Currency.EUR, "current": 0.0, "target": 10000.0})
        state = LedgerState(buckets=[eur_fund])

        state = engine.mint(state, 110, Currency.USD).state
        holder["table"] = RateTable(rates={"USD": 1.0, "EUR": 1.25})
        result = engine.allocate(state, state.chips[0].id, eur_fund.id)
        assert result.state.find_bucket(eur_fund.id).current == pytest.approx(110 / 1.25)

    def test_chip_side_uses_mint_rate(self, fund):
        holder = {"table": RateTable(rates={"USD": 1.0, "EUR": 1.1})}
        engine = LedgerEngine(RateTableProvider(lambda: holder["table"]))
        state = LedgerState(buckets=[fund])

        state = engine.mint(state, 100, Currency.EUR).state
        holder["table"] = RateTable(rates={"USD": 1.0, "EUR": 2.0})
        result = engine.allocate(state, state.chips[0].id, fund.id)
        assert result.state.find_bucket(fund.id).current == pytest.approx(340 + 110)

    def test_missing_bucket_rate_propagates(self):
        engine = LedgerEngine(StaticRateProvider({"USD": 1.0}))
        fund = FundBucket(id="idr", name="IDR", currency=Currency.IDR, target=1e9)
        state = engine.mint(LedgerState(buckets=[fund]), 10, Currency.USD).state

        result = engine.allocate(state, state.chips[0].id, "idr")
        assert math.isnan(result.state.find_bucket("idr").current)
        assert LedgerEventType.RATE_UNAVAILABLE in event_types(result)

    @pytest.mark.parametrize("bad_rate", [0.0, math.inf, -0.5])
    def test_unusable_debt_rate_does_not_wipe_balance(self, bad_rate):
        engine = LedgerEngine(StaticRateProvider({"USD": 1.0, "RUB": bad_rate}))
        debt = DebtBucket(id="rub", name="RUB CARD", currency=Currency.RUB,
                          current=474000.0, credit_limit=500000.0,
                          milestones=[400000.0, 100000.0])
        state = engine.mint(LedgerState(buckets=[debt]), 1, Currency.USD).state

        result = engine.allocate(state, state.chips[0].id, "rub")
        updated = result.state.find_bucket("rub")
        assert not math.isfinite(updated.current)
        assert updated.completed_milestones == []
        assert LedgerEventType.MILESTONE_COMPLETED not in event_types(result)
        assert LedgerEventType.RATE_UNAVAILABLE in event_types(result)

    def test_zero_fund_rate_does_not_fill_target(self):
        engine = LedgerEngine(StaticRateProvider({"USD": 1.0, "IDR": 0.0}))
        fund = FundBucket(id="idr", name="IDR", currency=Currency.IDR,
                          current=5.0, target=1000.0)
        state = engine.mint(LedgerState(buckets=[fund]), 10, Currency.USD).state

        result = engine.allocate(state, state.chips[0].id, "idr")
        assert math.isnan(result.state.find_bucket("idr").current)
        assert LedgerEventType.REMAINDER_CREATED not in event_types(result)

    def test_allocate_does_not_mutate_input(self, engine, state):
        minted = engine.mint(state, 100, Currency.USD).state
        engine.allocate(minted, minted.chips[0].id, "stabilisation-fund")
        assert len(minted.chips) == 1
        assert minted.find_bucket("stabilisation-fund").current == 340
        assert minted.find_bucket("stabilisation-fund").holdings == {}
        assert minted.transactions == []


class TestStateIndependence:
    """New states never share mutable parts with the states they came from."""

    def test_payment_shares_nothing_with_input(self, drop, state):
        result, _ = drop(state, 100, Currency.USD, "boa-card")
        old_debt = state.find_bucket("boa-card")
        new_debt = result.state.find_bucket("boa-card")

        assert new_debt.milestones is not old_debt.milestones
        assert result.state.rate_table is not state.rate_table
        assert result.state.find_bucket("stabilisation-fund") is not state.find_bucket("stabilisation-fund")

        old_debt.milestones.append(42.0)
        state.rate_table.rates["EUR"] = 9.0
        assert new_debt.milestones == [1500.0, 1000.0, 500.0]
        assert "EUR" not in result.state.rate_table.rates

    def test_mutating_new_state_leaves_old_untouched(self, drop, state):
        result, _ = drop(state, 100, Currency.EUR, "stabilisation-fund")
        result.state.find_bucket("stabilisation-fund").holdings[Currency.GBP] = 1.0
        result.state.preferences.sound_enabled = True

        assert state.find_bucket("stabilisation-fund").holdings == {}
        assert state.preferences.sound_enabled is False
