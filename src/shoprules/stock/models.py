"""Stock and shipping domain objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
from urllib.parse import quote

from ..taxation.models import Order, TaxCategory
from ..taxation.zones import Address, Zone

ZERO = Decimal("0")


class ContentState(str, Enum):
    ON_HAND = "on_hand"
    BACKORDERED = "backordered"


class ShipmentState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    SHIPPED = "shipped"
    CANCELED = "canceled"


@dataclass(eq=False)
class ShippingCategory:
    id: int
    name: str
    shipping_methods: List["ShippingMethod"] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"ShippingCategory(id={self.id!r}, name={self.name!r})"


@dataclass(eq=False)
class StockLocation:
    id: int
    name: str
    shipping_methods: List["ShippingMethod"] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"StockLocation(id={self.id!r}, name={self.name!r})"


@dataclass(eq=False)
class ShippingMethod:
    """A way of shipping a package.

    ``display_on`` is one of "both", "front_end" or "back_end".
    """

    id: int
    name: str
    shipping_categories: List[ShippingCategory] = field(default_factory=list)
    available_to_all: bool = True
    zones: List[Zone] = field(default_factory=list)
    stock_locations: List[StockLocation] = field(default_factory=list)
    display_on: str = "both"
    tracking_url: Optional[str] = None
    tax_category: Optional[TaxCategory] = None

    def include(self, address: Optional[Address]) -> bool:
        if address is None:
            return False
        return any(zone.include(address) for zone in self.zones)

    def build_tracking_url(self, tracking: Optional[str]) -> Optional[str]:
        if not tracking or not self.tracking_url:
            return None
        return self.tracking_url.replace(":tracking", quote(tracking, safe=""))

    @property
    def frontend(self) -> bool:
        # Some shipping methods are only meant to be set via backend
        return self.display_on != "back_end"

    def validate(self) -> List[str]:
        errors = []
        if not self.name:
            errors.append("Name can't be blank")
        if not self.shipping_categories:
            errors.append("You need to select at least one shipping category")
        return errors

    def __repr__(self) -> str:
        return f"ShippingMethod(id={self.id!r}, name={self.name!r})"


@dataclass(eq=False)
class Variant:
    id: int
    sku: str
    price: Decimal = ZERO
    weight: Decimal = ZERO
    shipping_category: Optional[ShippingCategory] = None


@dataclass(eq=False)
class InventoryUnit:
    id: Any
    variant: Variant
    order: Optional[Order] = None
    state: str = ContentState.ON_HAND.value

    def __repr__(self) -> str:
        return f"InventoryUnit(id={self.id!r}, sku={self.variant.sku!r}, state={self.state!r})"


@dataclass(eq=False)
class ContentItem:
    """One inventory unit inside a package, on hand or backordered."""

    inventory_unit: InventoryUnit
    state: ContentState = ContentState.ON_HAND

    def __post_init__(self) -> None:
        self.state = ContentState(self.state)

    @property
    def variant(self) -> Variant:
        return self.inventory_unit.variant

    @property
    def quantity(self) -> int:
        return 1

    @property
    def weight(self) -> Decimal:
        return Decimal(self.variant.weight) * self.quantity

    @property
    def price(self) -> Decimal:
        return Decimal(self.variant.price)

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity

    @property
    def on_hand(self) -> bool:
        return self.state == ContentState.ON_HAND

    @property
    def backordered(self) -> bool:
        return self.state == ContentState.BACKORDERED


@dataclass(eq=False)
class ShippingRate:
    shipping_method: ShippingMethod
    cost: Decimal = ZERO
    selected: bool = False


@dataclass(eq=False)
class Shipment:
    stock_location: StockLocation
    shipping_rates: List[ShippingRate] = field(default_factory=list)
    inventory_units: List[InventoryUnit] = field(default_factory=list)
    state: ShipmentState = ShipmentState.PENDING
    number: Optional[str] = None

    @property
    def selected_shipping_rate(self) -> Optional[ShippingRate]:
        for rate in self.shipping_rates:
            if rate.selected:
                return rate
        return None

    def to_document(self) -> dict:
        selected = self.selected_shipping_rate
        return {
            "number": self.number,
            "state": self.state.value,
            "stock_location_id": self.stock_location.id,
            "inventory_unit_ids": [unit.id for unit in self.inventory_units],
            "shipping_rates": [
                {
                    "shipping_method_id": rate.shipping_method.id,
                    "cost": str(rate.cost),
                    "selected": rate.selected,
                }
                for rate in self.shipping_rates
            ],
            "cost": str(selected.cost) if selected else None,
        }
