"""In-memory package of inventory awaiting shipment."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional, Union

from ..taxation.models import Order
from ..utils.config import Config
from .models import ContentItem, ContentState, InventoryUnit, Shipment, ShippingCategory, ShippingMethod, ShippingRate, StockLocation

StateArg = Optional[Union[str, ContentState]]


def _state(state: StateArg) -> Optional[ContentState]:
    return None if state is None else ContentState(state)


class Package:
    """Inventory units from one stock location that will ship together.

    A package holds at most one content item per inventory unit.
    """

    def __init__(self, stock_location: StockLocation, contents: Optional[List[ContentItem]] = None,
                 config: Optional[Config] = None) -> None:
        self.stock_location = stock_location
        self.contents: List[ContentItem] = []
        self.shipping_rates: List[ShippingRate] = []
        self.config = config or Config()
        for item in contents or []:
            if self.find_item(item.inventory_unit) is None:
                self.contents.append(item)

    def add(self, inventory_unit: InventoryUnit, state: StateArg = ContentState.ON_HAND) -> None:
        """Add ``inventory_unit``; a unit that is already packed is ignored."""
        if self.find_item(inventory_unit) is None:
            self.contents.append(ContentItem(inventory_unit, _state(state)))

    def add_multiple(self, inventory_units: Iterable[InventoryUnit], state: StateArg = ContentState.ON_HAND) -> None:
        for inventory_unit in inventory_units:
            self.add(inventory_unit, state)

    def remove(self, inventory_unit: InventoryUnit) -> None:
        item = self.find_item(inventory_unit)
        if item is not None:
            self.contents.remove(item)

    def find_item(self, inventory_unit: InventoryUnit, state: StateArg = None) -> Optional[ContentItem]:
        wanted = _state(state)
        for item in self.contents:
            if item.inventory_unit is inventory_unit and (wanted is None or item.state == wanted):
                return item
        return None

    def quantity(self, state: StateArg = None) -> int:
        wanted = _state(state)
        return sum(item.quantity for item in self.contents if wanted is None or item.state == wanted)

    @property
    def empty(self) -> bool:
        return self.quantity() == 0

    @property
    def on_hand(self) -> List[ContentItem]:
        return [item for item in self.contents if item.on_hand]

    @property
    def backordered(self) -> List[ContentItem]:
        return [item for item in self.contents if item.backordered]

    @property
    def weight(self) -> Decimal:
        return sum((item.weight for item in self.contents), Decimal("0"))

    @property
    def order(self) -> Optional[Order]:
        for item in self.contents:
            if item.inventory_unit.order is not None:
                return item.inventory_unit.order
        return None

    @property
    def currency(self) -> str:
        order = self.order
        if order is not None:
            return order.currency
        return self.config.get("currency", "USD")

    @property
    def shipping_categories(self) -> List[ShippingCategory]:
        categories: List[ShippingCategory] = []
        for item in self.contents:
            category = item.variant.shipping_category
            if category is not None and category not in categories:
                categories.append(category)
        return categories

    def shipping_methods(self) -> List[ShippingMethod]:
        """Shipping methods able to carry every shipping category in the package.

        Methods come from the stock location when they need no category the
        package lacks, and from the categories themselves when they are
        available to all and every category offers them.
        """
        categories = self.shipping_categories

        location_methods = [
            method for method in self.stock_location.shipping_methods
            if all(category in categories for category in method.shipping_categories)
        ]

        category_methods: List[ShippingMethod] = []
        if categories:
            category_methods = [m for m in categories[0].shipping_methods if m.available_to_all]
            for category in categories[1:]:
                category_methods = [m for m in category_methods if m in category.shipping_methods]

        methods: List[ShippingMethod] = []
        for method in location_methods + category_methods:
            if method not in methods:
                methods.append(method)
        return sorted(methods, key=lambda m: m.id)

    def to_shipment(self) -> Shipment:
        """Finalize content states onto the units and build the shipment.

        Each inventory unit must already belong to exactly one package across
        the whole order; the Prioritizer takes care of that.
        """
        for item in self.contents:
            item.inventory_unit.state = item.state.value

        return Shipment(
            stock_location=self.stock_location,
            shipping_rates=list(self.shipping_rates),
            inventory_units=[item.inventory_unit for item in self.contents],
        )

    def __repr__(self) -> str:
        return f"Package(stock_location={self.stock_location.name!r}, quantity={self.quantity()})"
