"""Adjustment stores: where tax adjustments and pre-tax amounts are written."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pymongo import MongoClient

from ..utils.config import Config
from ..utils.logging import get_logger
from ..utils.mongo import MongoRepository
from .models import Adjustment, TaxableItem, TaxRate

logger = get_logger(__name__)


class AdjustmentStore(ABC):
    """Persistence collaborator for the tax resolver."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes so that a failure leaves nothing half-applied."""

    @abstractmethod
    def insert(self, adjustment: Adjustment) -> None: ...

    @abstractmethod
    def delete(self, adjustment: Adjustment) -> None: ...

    @abstractmethod
    def detach_source(self, adjustment: Adjustment) -> None: ...

    @abstractmethod
    def update_amount(self, adjustment: Adjustment) -> None: ...

    @abstractmethod
    def update_pre_tax_amount(self, item: TaxableItem) -> None: ...

    @abstractmethod
    def delete_tax_adjustments(self, item: TaxableItem) -> None:
        """Delete every stored tax adjustment on ``item``, loaded or not."""

    @abstractmethod
    def adjustments_for_source(self, rate: TaxRate) -> List[Adjustment]: ...

    @abstractmethod
    def release_source(self, rate: TaxRate) -> None:
        """Detach ``rate`` from stored adjustments on completed orders and
        delete the rest."""


class InMemoryAdjustmentStore(AdjustmentStore):
    """List-backed store used by tests and the CLI dry run."""

    def __init__(self) -> None:
        self.adjustments: List[Adjustment] = []
        self.pre_tax_amounts: Dict[Any, Any] = {}
        self.deleted: List[Adjustment] = []

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshot = (list(self.adjustments), dict(self.pre_tax_amounts), list(self.deleted))
        try:
            yield
        except Exception:
            self.adjustments, self.pre_tax_amounts, self.deleted = snapshot
            raise

    def insert(self, adjustment: Adjustment) -> None:
        self.adjustments.append(adjustment)

    def delete(self, adjustment: Adjustment) -> None:
        if adjustment in self.adjustments:
            self.adjustments.remove(adjustment)
        self.deleted.append(adjustment)

    def detach_source(self, adjustment: Adjustment) -> None:
        # Adjustment objects are shared with the store, nothing to copy
        pass

    def update_amount(self, adjustment: Adjustment) -> None:
        pass

    def update_pre_tax_amount(self, item: TaxableItem) -> None:
        self.pre_tax_amounts[(item.kind, item.id)] = item.pre_tax_amount

    def delete_tax_adjustments(self, item: TaxableItem) -> None:
        for adjustment in [adj for adj in self.for_item(item) if adj.is_tax]:
            self.delete(adjustment)

    def adjustments_for_source(self, rate: TaxRate) -> List[Adjustment]:
        return [adj for adj in self.adjustments if adj.source is rate]

    def release_source(self, rate: TaxRate) -> None:
        for adjustment in self.adjustments_for_source(rate):
            if adjustment.order is not None and adjustment.order.completed:
                adjustment.source = None
            else:
                self.delete(adjustment)

    def for_item(self, item: TaxableItem) -> List[Adjustment]:
        """Stored adjustments on the item with the same kind and id as ``item``."""
        key = _item_key(item)
        return [adj for adj in self.adjustments if _item_key(adj.adjustable) == key]


def _item_key(item: TaxableItem) -> Tuple[str, Any]:
    return item.kind.value, item.id


class MongoAdjustmentRepository(MongoRepository, AdjustmentStore):
    """Writes adjustments and pre-tax amounts to MongoDB.

    Collections:
        - adjustments: one document per adjustment
        - taxable_items: pre_tax_amount per (kind, id)
        - orders: read to tell completed orders apart when a rate is released
    """

    def __init__(self, config: Optional[Config] = None, url: Optional[str] = None,
                 db_name: Optional[str] = None, client: Optional[MongoClient] = None) -> None:
        super().__init__(config=config, url=url, db_name=db_name, client=client)
        self._adjustments = self.config.get("adjustments_collection")
        self._items = self.config.get("items_collection")
        self._orders = self.config.get("orders_collection")
        self._session = None
        self._known: Dict[str, Adjustment] = {}

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._session is not None:
            # Nested calls join the outer transaction
            yield
            return
        with self.client.start_session() as session:
            with session.start_transaction():
                self._session = session
                try:
                    yield
                finally:
                    self._session = None

    def insert(self, adjustment: Adjustment) -> None:
        try:
            self.collection(self._adjustments).insert_one(adjustment.to_document(), session=self._session)
            self._known[adjustment.id] = adjustment
        except Exception as e:
            logger.error(f"Failed to insert adjustment {adjustment.id}: {e}")
            raise

    def delete(self, adjustment: Adjustment) -> None:
        try:
            self.collection(self._adjustments).delete_one({"_id": adjustment.id}, session=self._session)
            self._known.pop(adjustment.id, None)
        except Exception as e:
            logger.error(f"Failed to delete adjustment {adjustment.id}: {e}")
            raise

    def detach_source(self, adjustment: Adjustment) -> None:
        self.collection(self._adjustments).update_one(
            {"_id": adjustment.id},
            {"$set": {"source_id": None}},
            session=self._session,
        )

    def update_amount(self, adjustment: Adjustment) -> None:
        self.collection(self._adjustments).update_one(
            {"_id": adjustment.id},
            {"$set": {"amount": str(adjustment.amount), "label": adjustment.label}},
            session=self._session,
        )

    def update_pre_tax_amount(self, item: TaxableItem) -> None:
        self.collection(self._items).update_one(
            {"kind": item.kind.value, "item_id": item.id},
            {"$set": {"pre_tax_amount": str(item.pre_tax_amount)}},
            upsert=True,
            session=self._session,
        )

    def delete_tax_adjustments(self, item: TaxableItem) -> None:
        query = {"adjustable_id": item.id, "adjustable_type": item.kind.value, "source_type": "tax"}
        try:
            result = self.collection(self._adjustments).delete_many(query, session=self._session)
        except Exception as e:
            logger.error(f"Failed to purge tax adjustments of {item!r}: {e}")
            raise
        for adjustment_id, adjustment in list(self._known.items()):
            if adjustment.adjustable.kind == item.kind and adjustment.adjustable.id == item.id and adjustment.is_tax:
                del self._known[adjustment_id]
        logger.debug(f"Purged {result.deleted_count} stored tax adjustment(s) of {item!r}")

    def adjustments_for_source(self, rate: TaxRate) -> List[Adjustment]:
        """Adjustments inserted through this repository that point at ``rate``.

        Stored adjustments from other processes are handled by ``release_source``.
        """
        return [adj for adj in self._known.values() if adj.source is rate]

    def release_source(self, rate: TaxRate) -> None:
        completed = [
            str(doc["id"])
            for doc in self.collection(self._orders).find({"completed_at": {"$ne": None}}, {"_id": 0, "id": 1})
        ]
        query = {"source_id": rate.id, "source_type": "tax"}
        adjustments = self.collection(self._adjustments)
        try:
            detached = adjustments.update_many(
                {**query, "order_id": {"$in": completed}},
                {"$set": {"source_id": None}},
                session=self._session,
            )
            deleted = adjustments.delete_many({**query, "order_id": {"$nin": completed}}, session=self._session)
        except Exception as e:
            logger.error(f"Failed to release adjustments of tax rate {rate.id}: {e}")
            raise
        logger.info(
            f"Tax rate {rate.id}: detached {detached.modified_count}, deleted {deleted.deleted_count} stored adjustment(s)"
        )

    def load_catalog_document(self) -> Dict[str, Any]:
        """Read the stored tax catalog in the shape ``load_catalog`` expects.

        Documents flagged ``deleted`` are skipped.
        """
        document: Dict[str, Any] = {}
        for key in ("countries", "zones", "tax_categories", "tax_rates", "orders"):
            docs = self.collection(key).find({"deleted": {"$ne": True}}, {"_id": 0})
            document[key] = list(docs)
        logger.info(
            f"Loaded catalog: {len(document['zones'])} zones, {len(document['tax_rates'])} tax rates"
        )
        return document
