"""Turns inventory units into packages and packages into shipments."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..utils.config import Config
from ..utils.logging import get_logger
from .models import ContentItem, Shipment, ShippingMethod, StockLocation
from .package import Package
from .prioritizer import Prioritizer

logger = get_logger(__name__)


class StockPackager:
    """Entry point for fulfillment planning.

    ``repository`` is anything with a ``save(shipment)`` method, normally a
    MongoShipmentRepository. Without one, shipments are only built.
    """

    def __init__(self, config: Optional[Config] = None, repository=None) -> None:
        self.config = config or Config()
        self.repository = repository

    def build_package(self, stock_location: StockLocation, content_items: Iterable[ContentItem]) -> Package:
        package = Package(stock_location, config=self.config)
        for item in content_items:
            package.add(item.inventory_unit, item.state)
        logger.debug(f"Built {package!r}")
        return package

    def eligible_shipping_methods(self, package: Package) -> List[ShippingMethod]:
        return package.shipping_methods()

    def to_shipments(self, packages: Sequence[Package]) -> List[Shipment]:
        packages = Prioritizer(packages).prioritize()
        shipments = []
        for package in packages:
            shipment = package.to_shipment()
            if self.repository is not None:
                self.repository.save(shipment)
            shipments.append(shipment)
        logger.info(f"Planned {len(shipments)} shipment(s)")
        return shipments
