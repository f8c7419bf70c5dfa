"""Tax rate matching and adjustment application."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple

from ..errors import TaxAdjustmentError, TaxConfigurationError
from ..utils.config import Config
from ..utils.logging import get_logger
from .calculators import round_amount
from .models import ZERO, Adjustment, AdjustmentSourceType, TaxableItem, TaxRate, to_decimal
from .repository import AdjustmentStore, InMemoryAdjustmentStore
from .zones import Zone, default_tax_zone

logger = get_logger(__name__)

REFUND_LABEL = "Refund"


class TaxResolver:
    """Finds the tax rates for a jurisdiction and applies them to items.

    Zones:
      - Spain (default tax zone)
      - France

    Rates:
      21% inclusive - "Clothing" - Spain
      18% inclusive - "Clothing" - France

    Shipping clothing to Spain applies the Spanish rate. Shipping it to
    France applies the French rate only: the Spanish default rate is dropped
    from the match because France has its own rate for that category, so no
    Spanish refund is created next to the French tax.
    """

    def __init__(
        self,
        zones: Iterable[Zone],
        rates: Iterable[TaxRate] = (),
        store: Optional[AdjustmentStore] = None,
        config: Optional[Config] = None,
    ) -> None:
        self.config = config or Config()
        self.zones: List[Zone] = list(zones)
        self.store = store or InMemoryAdjustmentStore()
        self.precision = int(self.config.get("tax_precision", 2))
        self.rates: List[TaxRate] = []
        for rate in rates:
            self.add_rate(rate)

    @property
    def default_zone(self) -> Optional[Zone]:
        return default_tax_zone(self.zones)

    # ------------------------------------------------------------------
    # Rate registry
    # ------------------------------------------------------------------

    def validate_rate(self, rate: TaxRate) -> None:
        """Raise TaxConfigurationError if ``rate`` cannot be stored."""
        if rate.tax_category is None:
            raise TaxConfigurationError(f"Tax rate {rate.id} has no tax category")
        try:
            rate.amount = to_decimal(rate.amount)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise TaxConfigurationError(f"Tax rate {rate.id} amount is not numeric: {rate.amount!r}") from e
        if not rate.amount.is_finite():
            raise TaxConfigurationError(f"Tax rate {rate.id} amount is not numeric: {rate.amount!r}")
        if rate.included_in_price and self.default_zone is None:
            raise TaxConfigurationError(
                f"Tax rate {rate.id} is included in price but no default tax zone is configured"
            )

    def add_rate(self, rate: TaxRate) -> TaxRate:
        self.validate_rate(rate)
        self.rates.append(rate)
        logger.debug(f"Registered {rate!r}")
        return rate

    @property
    def active_rates(self) -> List[TaxRate]:
        return [rate for rate in self.rates if rate.active]

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match(self, jurisdiction: Optional[Zone]) -> List[TaxRate]:
        """Return the rates that may apply to items taxed in ``jurisdiction``.

        Whether a rate actually applies to an item is decided later by
        comparing tax categories.
        """
        if jurisdiction is None:
            return []

        rates = self.active_rates
        default_zone = self.default_zone
        zone_rates = [rate for rate in rates if rate.zone.contains(jurisdiction)]
        default_rates = [rate for rate in rates if rate.is_default_vat(default_zone)]

        # A default rate would only produce a refund next to the destination's
        # own rate for the same category
        zone_categories = {rate.tax_category for rate in zone_rates}
        default_rates = [rate for rate in default_rates if rate.tax_category not in zone_categories]

        matched: List[TaxRate] = []
        for rate in zone_rates + default_rates:
            if rate not in matched:
                matched.append(rate)
        return matched

    def default_zone_or_zone_match(self, rate: TaxRate, jurisdiction: Optional[Zone]) -> bool:
        default_zone = self.default_zone
        if default_zone is not None and default_zone.contains(jurisdiction):
            return True
        return rate.zone.contains(jurisdiction)

    # ------------------------------------------------------------------
    # Adjusting
    # ------------------------------------------------------------------

    def adjust(self, jurisdiction: Optional[Zone], items: Sequence[TaxableItem]) -> None:
        """Recreate tax adjustments on ``items`` for ``jurisdiction``.

        Each item is recomputed in its own transaction. A failure on one item
        rolls that item back and is reported after the remaining items have
        been processed.
        """
        rates = self.match(jurisdiction)
        categories = {rate.tax_category for rate in rates}
        relevant = [item for item in items if item.tax_category in categories]
        non_relevant = [item for item in items if item.tax_category not in categories]

        logger.info(
            f"Adjusting {len(items)} item(s) for zone "
            f"{jurisdiction.name if jurisdiction else None}: {len(rates)} rate(s) matched"
        )

        failures: List[Tuple[TaxableItem, BaseException]] = []

        for item in relevant:
            item_rates = [rate for rate in rates if rate.tax_category == item.tax_category]
            error = self._isolated(item, self._apply_rates, jurisdiction, item, item_rates)
            if error is not None:
                failures.append((item, error))

        for item in non_relevant:
            error = self._isolated(item, self._clear_taxes, item)
            if error is not None:
                failures.append((item, error))

        if failures:
            raise TaxAdjustmentError(failures)

    def _isolated(self, item: TaxableItem, work, *args) -> Optional[BaseException]:
        adjustments = list(item.adjustments)
        pre_tax_amount = item.pre_tax_amount
        try:
            with self.store.transaction():
                work(*args)
        except Exception as e:
            item.adjustments = adjustments
            item.pre_tax_amount = pre_tax_amount
            logger.error(f"Tax adjustment failed for {item!r}: {e}")
            return e
        return None

    def _apply_rates(self, jurisdiction: Zone, item: TaxableItem, rates: List[TaxRate]) -> None:
        self._destroy_tax_adjustments(item)
        self.store_pre_tax_amount(item, rates)
        for rate in rates:
            self.adjust_item(rate, jurisdiction, item)

    def _clear_taxes(self, item: TaxableItem) -> None:
        self._destroy_tax_adjustments(item)
        item.pre_tax_amount = ZERO
        self.store.update_pre_tax_amount(item)

    def _destroy_tax_adjustments(self, item: TaxableItem) -> None:
        # One delete per loaded adjustment so the store sees every removal,
        # then purge whatever earlier runs left in the store for this item
        for adjustment in item.tax_adjustments:
            self.store.delete(adjustment)
            item.adjustments.remove(adjustment)
        self.store.delete_tax_adjustments(item)

    def store_pre_tax_amount(self, item: TaxableItem, rates: Sequence[TaxRate]) -> Decimal:
        """Back inclusive tax out of the item's discounted amount and store it."""
        pre_tax_amount = item.discounted_amount
        included = [rate.amount for rate in rates if rate.included_in_price]
        if included:
            pre_tax_amount = pre_tax_amount / (1 + sum(included, ZERO))
        item.pre_tax_amount = round_amount(pre_tax_amount, self.precision)
        self.store.update_pre_tax_amount(item)
        return item.pre_tax_amount

    def adjust_item(self, rate: TaxRate, jurisdiction: Optional[Zone], item: TaxableItem) -> Optional[Adjustment]:
        """Create the adjustment ``rate`` contributes to ``item``, if any."""
        amount = self.compute_amount(rate, item, jurisdiction)
        if amount == 0:
            return None

        included = rate.included_in_price and self.default_zone_or_zone_match(rate, jurisdiction)
        label = rate.label
        if amount < 0:
            label = f"{REFUND_LABEL} {label}"

        adjustment = Adjustment(
            adjustable=item,
            amount=amount,
            label=label,
            source=rate,
            source_type=AdjustmentSourceType.TAX,
            included=included,
            order=item.order,
        )
        self.store.insert(adjustment)
        item.adjustments.append(adjustment)
        logger.debug(f"{item!r}: {label} {amount} (included={included})")
        return adjustment

    def compute_amount(self, rate: TaxRate, item: TaxableItem, jurisdiction: Optional[Zone]) -> Decimal:
        """Calculator output for ``item``, negated when an inclusive rate
        does not apply at the destination (a refund of the embedded tax)."""
        if rate.calculator is None:
            raise TaxConfigurationError(f"Tax rate {rate.id} has no calculator")
        amount = Decimal(rate.calculator.compute(rate, item))
        if rate.included_in_price and not self.default_zone_or_zone_match(rate, jurisdiction):
            return -amount
        return amount

    def refresh_adjustment(self, adjustment: Adjustment, jurisdiction: Optional[Zone]) -> Decimal:
        """Recompute an open tax adjustment from its source rate."""
        if adjustment.finalized or adjustment.source is None or not adjustment.is_tax:
            return adjustment.amount
        amount = self.compute_amount(adjustment.source, adjustment.adjustable, jurisdiction)
        if amount != adjustment.amount:
            adjustment.amount = amount
            self.store.update_amount(adjustment)
        return amount

    # ------------------------------------------------------------------
    # Removing rates
    # ------------------------------------------------------------------

    def destroy_rate(self, rate: TaxRate) -> None:
        """Soft-delete ``rate`` and deal with the adjustments it produced.

        Adjustments on incomplete orders are removed. Adjustments on completed
        orders stay in place with their source detached so the order total
        does not change. Loaded adjustments are handled one by one; the store
        then applies the same rule to the ones it holds that were never loaded.
        """
        with self.store.transaction():
            for adjustment in self.store.adjustments_for_source(rate):
                if adjustment.order is not None and adjustment.order.completed:
                    adjustment.source = None
                    self.store.detach_source(adjustment)
                else:
                    self.store.delete(adjustment)
                    if adjustment in adjustment.adjustable.adjustments:
                        adjustment.adjustable.adjustments.remove(adjustment)
            self.store.release_source(rate)
            rate.deleted_at = datetime.now(timezone.utc)
        logger.info(f"Deleted tax rate {rate.id}")
