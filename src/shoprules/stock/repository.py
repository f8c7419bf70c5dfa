"""MongoDB repository for shipments built from packages."""

from __future__ import annotations

import uuid
from typing import Optional

from pymongo import MongoClient

from ..utils.config import Config
from ..utils.logging import get_logger
from ..utils.mongo import MongoRepository
from .models import Shipment

logger = get_logger(__name__)


class MongoShipmentRepository(MongoRepository):
    """Stores shipments and the final state of their inventory units."""

    def __init__(self, config: Optional[Config] = None, url: Optional[str] = None,
                 db_name: Optional[str] = None, client: Optional[MongoClient] = None) -> None:
        super().__init__(config=config, url=url, db_name=db_name, client=client)
        self._shipments = self.config.get("shipments_collection")
        self._units = self.config.get("inventory_units_collection")

    def save(self, shipment: Shipment) -> Shipment:
        if shipment.number is None:
            shipment.number = f"H{uuid.uuid4().hex[:11].upper()}"
        try:
            with self.client.start_session() as session:
                with session.start_transaction():
                    self.collection(self._shipments).insert_one(shipment.to_document(), session=session)
                    for unit in shipment.inventory_units:
                        self.collection(self._units).update_one(
                            {"_id": unit.id},
                            {"$set": {"state": unit.state, "shipment_number": shipment.number}},
                            session=session,
                        )
        except Exception as e:
            logger.error(f"Failed to save shipment {shipment.number}: {e}")
            raise
        logger.info(f"Saved shipment {shipment.number} with {len(shipment.inventory_units)} unit(s)")
        return shipment
