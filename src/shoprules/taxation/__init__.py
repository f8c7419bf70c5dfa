"""Tax module entry point."""

from .calculators import DefaultTax, FlatPercentItemTotal, FlatRate, build_calculator
from .models import Adjustment, AdjustmentSourceType, Order, TaxableItem, TaxableKind, TaxCategory, TaxRate
from .repository import AdjustmentStore, InMemoryAdjustmentStore, MongoAdjustmentRepository
from .resolver import TaxResolver
from .zones import Address, Country, State, Zone, default_tax_zone, match_zone

__all__ = [
    "Address",
    "Adjustment",
    "AdjustmentSourceType",
    "AdjustmentStore",
    "Country",
    "DefaultTax",
    "FlatPercentItemTotal",
    "FlatRate",
    "InMemoryAdjustmentStore",
    "MongoAdjustmentRepository",
    "Order",
    "State",
    "TaxCategory",
    "TaxRate",
    "TaxResolver",
    "TaxableItem",
    "TaxableKind",
    "Zone",
    "build_calculator",
    "default_tax_zone",
    "match_zone",
]
