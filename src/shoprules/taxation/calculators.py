"""Pluggable calculators that turn a tax rate into a monetary amount."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

from ..errors import CatalogError


def round_amount(value: Decimal, precision: int = 2) -> Decimal:
    """Round half-up to ``precision`` decimal places."""
    quantum = Decimal(1).scaleb(-precision)
    return Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


class Calculator:
    """Base calculator. Subclasses implement ``compute(rate, item)``."""

    type_name = "base"

    def __init__(self, precision: int = 2) -> None:
        self.precision = precision

    def compute(self, rate, item) -> Decimal:
        raise NotImplementedError

    def to_document(self) -> Dict[str, Any]:
        return {"type": self.type_name}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class DefaultTax(Calculator):
    """Rate fraction times the item's taxable base.

    Inclusive rates are taken from the stored pre-tax amount, exclusive
    rates from the discounted amount.
    """

    type_name = "default_tax"

    def compute(self, rate, item) -> Decimal:
        if rate.included_in_price:
            base = item.pre_tax_amount
        else:
            base = item.discounted_amount
        return round_amount(base * Decimal(rate.amount), self.precision)


class FlatRate(Calculator):
    type_name = "flat_rate"

    def __init__(self, amount: Decimal, precision: int = 2) -> None:
        super().__init__(precision)
        self.amount = Decimal(amount)

    def compute(self, rate, item) -> Decimal:
        return round_amount(self.amount, self.precision)

    def to_document(self) -> Dict[str, Any]:
        return {"type": self.type_name, "amount": str(self.amount)}

    def __repr__(self) -> str:
        return f"FlatRate(amount={self.amount!r})"


class FlatPercentItemTotal(Calculator):
    type_name = "flat_percent_item_total"

    def __init__(self, percent: Decimal, precision: int = 2) -> None:
        super().__init__(precision)
        self.percent = Decimal(percent)

    def compute(self, rate, item) -> Decimal:
        return round_amount(item.discounted_amount * self.percent / 100, self.precision)

    def to_document(self) -> Dict[str, Any]:
        return {"type": self.type_name, "percent": str(self.percent)}


CALCULATORS = {
    DefaultTax.type_name: DefaultTax,
    FlatRate.type_name: FlatRate,
    FlatPercentItemTotal.type_name: FlatPercentItemTotal,
}


def build_calculator(definition: Any, precision: int = 2) -> Calculator:
    """Build a calculator from a ``{"type": ..., ...}`` mapping.

    A missing definition yields the default tax calculator.
    """
    if definition is None:
        return DefaultTax(precision=precision)
    if isinstance(definition, Calculator):
        return definition
    if isinstance(definition, str):
        definition = {"type": definition}

    options = dict(definition)
    type_name = options.pop("type", DefaultTax.type_name)
    calculator_cls = CALCULATORS.get(type_name)
    if calculator_cls is None:
        raise CatalogError(f"Unknown calculator type: {type_name}")
    try:
        return calculator_cls(precision=precision, **options)
    except TypeError as e:
        raise CatalogError(f"Invalid options for calculator {type_name}: {e}") from e
