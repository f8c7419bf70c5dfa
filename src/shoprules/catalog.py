"""Build the in-memory tax and stock graph from a JSON-compatible document.

Example document::

    {
        "countries": [{"id": 1, "iso": "DE", "name": "Germany"}],
        "zones": [{"id": 1, "name": "Germany", "default_tax": true, "countries": ["DE"]}],
        "tax_categories": [{"id": 1, "name": "Books"}],
        "tax_rates": [{"id": 1, "amount": "0.07", "zone": "Germany",
                       "tax_category": "Books", "included_in_price": true}],
        "orders": [{"id": "R100", "tax_zone": "Germany",
                    "line_items": [{"id": 1, "price": "20.00", "tax_category": "Books"}]}]
    }

Zones, categories, stock locations and shipping methods are referenced by
name; countries by ISO code; states by "ISO-ABBR" (e.g. "US-NY"); variants by
SKU; orders and inventory units by id.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import CatalogError
from .stock.models import InventoryUnit, ShippingCategory, ShippingMethod, ShippingRate, StockLocation, Variant
from .stock.package import Package
from .taxation.calculators import build_calculator
from .taxation.models import Order, TaxableItem, TaxCategory, TaxRate
from .taxation.repository import AdjustmentStore
from .taxation.resolver import TaxResolver
from .taxation.zones import Address, Country, State, Zone, match_zone
from .utils.config import Config
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Catalog:
    countries: Dict[str, Country] = field(default_factory=dict)
    states: Dict[str, State] = field(default_factory=dict)
    zones: Dict[str, Zone] = field(default_factory=dict)
    tax_categories: Dict[str, TaxCategory] = field(default_factory=dict)
    tax_rates: List[TaxRate] = field(default_factory=list)
    orders: Dict[str, Order] = field(default_factory=dict)
    order_items: Dict[str, List[TaxableItem]] = field(default_factory=dict)
    order_zones: Dict[str, Optional[Zone]] = field(default_factory=dict)
    shipping_categories: Dict[str, ShippingCategory] = field(default_factory=dict)
    stock_locations: Dict[str, StockLocation] = field(default_factory=dict)
    shipping_methods: Dict[str, ShippingMethod] = field(default_factory=dict)
    variants: Dict[str, Variant] = field(default_factory=dict)
    inventory_units: Dict[str, InventoryUnit] = field(default_factory=dict)
    packages: List[Package] = field(default_factory=list)

    def tax_resolver(self, store: Optional[AdjustmentStore] = None, config: Optional[Config] = None) -> TaxResolver:
        return TaxResolver(self.zones.values(), self.tax_rates, store=store, config=config)

    def zone_for_address(self, country_iso: str, state_abbr: Optional[str] = None) -> Optional[Zone]:
        country = _lookup(self.countries, country_iso, "country")
        state = _lookup(self.states, f"{country.iso}-{state_abbr}", "state") if state_abbr else None
        return match_zone(self.zones.values(), Address(country=country, state=state))


def _lookup(mapping: Dict[str, Any], key: Any, kind: str) -> Any:
    try:
        return mapping[str(key)]
    except KeyError:
        raise CatalogError(f"Unknown {kind}: {key}") from None


def _state(catalog: Catalog, key: str) -> State:
    # A bare abbreviation is ambiguous across countries
    if "-" not in str(key):
        raise CatalogError(f"State must be given as ISO-ABBR: {key}")
    return _lookup(catalog.states, key, "state")


def _decimal(value: Any, default: str = "0") -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal(default)


def _datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def load_catalog(document: Dict[str, Any], config: Optional[Config] = None) -> Catalog:
    """Build a Catalog from ``document``; unknown references raise CatalogError."""
    config = config or Config()
    precision = int(config.get("tax_precision", 2))
    catalog = Catalog()

    for doc in document.get("countries", []):
        country = Country(id=doc["id"], iso=doc["iso"], name=doc.get("name", ""))
        catalog.countries[country.iso] = country
        for state_doc in doc.get("states", []):
            state = country.add_state(State(id=state_doc["id"], abbr=state_doc["abbr"], name=state_doc.get("name", "")))
            catalog.states[f"{country.iso}-{state.abbr}"] = state

    for doc in document.get("zones", []):
        members: List[Union[Country, State]] = [_lookup(catalog.countries, iso, "country") for iso in doc.get("countries", [])]
        members += [_state(catalog, key) for key in doc.get("states", [])]
        zone = Zone(
            id=doc["id"],
            name=doc["name"],
            members=members,
            default_tax=bool(doc.get("default_tax", False)),
            description=doc.get("description", ""),
        )
        catalog.zones[zone.name] = zone

    for doc in document.get("tax_categories", []):
        category = TaxCategory(id=doc["id"], name=doc["name"], is_default=bool(doc.get("is_default", False)))
        catalog.tax_categories[category.name] = category

    for doc in document.get("tax_rates", []):
        catalog.tax_rates.append(
            TaxRate(
                id=doc["id"],
                name=doc.get("name"),
                amount=_decimal(doc.get("amount")),
                zone=_lookup(catalog.zones, doc["zone"], "zone"),
                tax_category=_lookup(catalog.tax_categories, doc["tax_category"], "tax category"),
                included_in_price=bool(doc.get("included_in_price", False)),
                calculator=build_calculator(doc.get("calculator"), precision=precision),
                show_rate_in_label=bool(doc.get("show_rate_in_label", config.get("show_rate_in_label", True))),
                deleted_at=_datetime(doc.get("deleted_at")),
            )
        )

    for doc in document.get("orders", []):
        _load_order(catalog, doc, config)

    _load_stock(catalog, document, config)

    logger.debug(
        f"Catalog loaded: {len(catalog.zones)} zones, {len(catalog.tax_rates)} rates, "
        f"{len(catalog.orders)} orders, {len(catalog.packages)} packages"
    )
    return catalog


def _load_order(catalog: Catalog, doc: Dict[str, Any], config: Config) -> None:
    order = Order(
        id=str(doc["id"]),
        currency=doc.get("currency", config.get("currency", "USD")),
        completed_at=_datetime(doc.get("completed_at")),
    )
    catalog.orders[order.id] = order

    if doc.get("tax_zone"):
        catalog.order_zones[order.id] = _lookup(catalog.zones, doc["tax_zone"], "zone")
    elif doc.get("ship_address"):
        address = doc["ship_address"]
        catalog.order_zones[order.id] = catalog.zone_for_address(address["country"], address.get("state"))
    else:
        catalog.order_zones[order.id] = None

    items = []
    for item_doc in doc.get("line_items", []):
        items.append(
            TaxableItem.line_item(
                id=item_doc["id"],
                price=_decimal(item_doc.get("price")),
                quantity=int(item_doc.get("quantity", 1)),
                tax_category=_optional_category(catalog, item_doc.get("tax_category")),
                order=order,
                promo_total=_decimal(item_doc.get("promo_total")),
            )
        )
    for item_doc in doc.get("shipments", []):
        items.append(
            TaxableItem.shipment(
                id=item_doc["id"],
                cost=_decimal(item_doc.get("cost")),
                tax_category=_optional_category(catalog, item_doc.get("tax_category")),
                order=order,
                promo_total=_decimal(item_doc.get("promo_total")),
            )
        )
    catalog.order_items[order.id] = items


def _optional_category(catalog: Catalog, name: Optional[str]) -> Optional[TaxCategory]:
    if name is None:
        return None
    return _lookup(catalog.tax_categories, name, "tax category")


def _load_stock(catalog: Catalog, document: Dict[str, Any], config: Config) -> None:
    for doc in document.get("shipping_categories", []):
        category = ShippingCategory(id=doc["id"], name=doc["name"])
        catalog.shipping_categories[category.name] = category

    for doc in document.get("stock_locations", []):
        location = StockLocation(id=doc["id"], name=doc["name"])
        catalog.stock_locations[location.name] = location

    for doc in document.get("shipping_methods", []):
        method = ShippingMethod(
            id=doc["id"],
            name=doc["name"],
            available_to_all=bool(doc.get("available_to_all", True)),
            zones=[_lookup(catalog.zones, name, "zone") for name in doc.get("zones", [])],
            display_on=doc.get("display_on", "both"),
            tracking_url=doc.get("tracking_url"),
            tax_category=_optional_category(catalog, doc.get("tax_category")),
        )
        for name in doc.get("shipping_categories", []):
            category = _lookup(catalog.shipping_categories, name, "shipping category")
            method.shipping_categories.append(category)
            category.shipping_methods.append(method)
        for name in doc.get("stock_locations", []):
            location = _lookup(catalog.stock_locations, name, "stock location")
            method.stock_locations.append(location)
            location.shipping_methods.append(method)
        catalog.shipping_methods[method.name] = method

    for doc in document.get("variants", []):
        category_name = doc.get("shipping_category")
        variant = Variant(
            id=doc["id"],
            sku=doc["sku"],
            price=_decimal(doc.get("price")),
            weight=_decimal(doc.get("weight")),
            shipping_category=_lookup(catalog.shipping_categories, category_name, "shipping category") if category_name else None,
        )
        catalog.variants[variant.sku] = variant

    for doc in document.get("inventory_units", []):
        order_id = doc.get("order")
        unit = InventoryUnit(
            id=doc["id"],
            variant=_lookup(catalog.variants, doc["variant"], "variant"),
            order=_lookup(catalog.orders, order_id, "order") if order_id is not None else None,
        )
        catalog.inventory_units[str(unit.id)] = unit

    for doc in document.get("packages", []):
        package = Package(_lookup(catalog.stock_locations, doc["stock_location"], "stock location"), config=config)
        for content in doc.get("contents", []):
            unit = _lookup(catalog.inventory_units, content["inventory_unit"], "inventory unit")
            package.add(unit, content.get("state", "on_hand"))
        for rate_doc in doc.get("shipping_rates", []):
            package.shipping_rates.append(
                ShippingRate(
                    shipping_method=_lookup(catalog.shipping_methods, rate_doc["shipping_method"], "shipping method"),
                    cost=_decimal(rate_doc.get("cost")),
                    selected=bool(rate_doc.get("selected", False)),
                )
            )
        catalog.packages.append(package)


def load_catalog_file(path: str, config: Optional[Config] = None) -> Catalog:
    with open(Path(path), "r", encoding="utf-8") as fh:
        document = json.load(fh)
    return load_catalog(document, config=config)
