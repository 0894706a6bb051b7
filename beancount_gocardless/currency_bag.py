"""Per-currency accumulator used to net pending amounts."""

from decimal import Decimal
from typing import Dict

from beancount.core.amount import Amount
from beancount.core.number import ZERO


class CurrencyBag:
    """Maps currency codes to accumulated decimal values.

    Currencies that were never added read as zero.
    """

    def __init__(self) -> None:
        self._values: Dict[str, Decimal] = {}

    def add(self, amount: Amount) -> None:
        self._values[amount.currency] = (
            self._values.get(amount.currency, ZERO) + amount.number)

    def get(self, currency: str) -> Decimal:
        return self._values.get(currency, ZERO)

