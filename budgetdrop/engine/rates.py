"""
Rate Providers

DESIGN DECISION: The engine never reads a module-level rate cache.
It is handed a RateProvider and asks it for a rate at the moment each
call needs one. Tests use StaticRateProvider with a fixed table; the
session binds a RateTableProvider to the rate table inside its state.

Rates are "value of one unit in USD". USD is always 1.
"""

from abc import ABC, abstractmethod
from typing import Callable, Mapping, Optional, Union

from budgetdrop.models.ledger import Currency, RateTable


CurrencyCode = Union[Currency, str]


def currency_code(currency: CurrencyCode) -> str:
    return currency.value if isinstance(currency, Currency) else str(currency)


class RateProvider(ABC):
    """
    Abstract source of live exchange rates.

    Implementations must be cheap to query; the engine reads a rate on
    every mint and allocation and does not cache it.
    """

    @abstractmethod
    def rates(self) -> dict[str, float]:
        """
        Current rate table.

        Returns:
            Mapping of currency code to its value in USD
        """
        pass

    def rate(self, currency: CurrencyCode) -> Optional[float]:
        """
        Live rate for one currency.

        Returns:
            The USD value of one unit, or None if the table has no entry
        """
        code = currency_code(currency)
        if code == Currency.USD.value:
            return 1.0
        return self.rates().get(code)


class StaticRateProvider(RateProvider):
    """Fixed rate table, mainly for tests and offline use."""

    def __init__(self, rates: Optional[Mapping[CurrencyCode, float]] = None):
        self._rates = {currency_code(k): float(v) for k, v in (rates or {}).items()}
        self._rates[Currency.USD.value] = 1.0

    def rates(self) -> dict[str, float]:
        return dict(self._rates)


class RateTableProvider(RateProvider):
    """
    Reads rates from a RateTable supplied by a callable.

    The callable is invoked on every lookup, so a refresh of the
    underlying table is visible to the very next engine call.
    """

    def __init__(self, source: Callable[[], RateTable]):
        self._source = source

    def rates(self) -> dict[str, float]:
        return dict(self._source().rates)
