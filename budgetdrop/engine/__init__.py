"""Allocation engine package."""

from budgetdrop.engine.ledger import EngineResult, LedgerEngine, initial_state
from budgetdrop.engine.rates import (
    RateProvider,
    RateTableProvider,
    StaticRateProvider,
)
from budgetdrop.engine.settlement import Settlement, resolve_direction, settle

__all__ = [
    "EngineResult",
    "LedgerEngine",
    "initial_state",
    "RateProvider",
    "RateTableProvider",
    "StaticRateProvider",
    "Settlement",
    "resolve_direction",
    "settle",
]
