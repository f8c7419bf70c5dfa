"""Stock packaging module entry point."""

from .models import (
    ContentItem,
    ContentState,
    InventoryUnit,
    Shipment,
    ShipmentState,
    ShippingCategory,
    ShippingMethod,
    ShippingRate,
    StockLocation,
    Variant,
)
from .package import Package
from .packager import StockPackager
from .prioritizer import Prioritizer
from .repository import MongoShipmentRepository

__all__ = [
    "ContentItem",
    "ContentState",
    "InventoryUnit",
    "MongoShipmentRepository",
    "Package",
    "Prioritizer",
    "Shipment",
    "ShipmentState",
    "ShippingCategory",
    "ShippingMethod",
    "ShippingRate",
    "StockLocation",
    "StockPackager",
    "Variant",
]
