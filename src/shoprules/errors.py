"""Exceptions raised by the tax and stock rules."""

from typing import Any, List, Tuple


class ShopRulesError(Exception):
    """Base class for all Shop Rules errors."""


class TaxConfigurationError(ShopRulesError, ValueError):
    """A tax rate or calculator is configured in a way that cannot be applied."""


class CatalogError(ShopRulesError, ValueError):
    """A catalog document references something that does not exist."""


class TaxAdjustmentError(ShopRulesError):
    """Tax could not be applied to one or more items.

    Items that succeeded keep their new adjustments; ``failures`` lists
    ``(item, exception)`` pairs for the ones that did not.
    """

    def __init__(self, failures: List[Tuple[Any, BaseException]]) -> None:
        self.failures = failures
        names = ", ".join(f"{item.kind.value} {item.id}" for item, _ in failures)
        super().__init__(f"Tax adjustment failed for {len(failures)} item(s): {names}")
