"""Tax domain objects: categories, rates, taxable items and adjustments."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from .zones import Zone

ZERO = Decimal("0")


class TaxableKind(str, Enum):
    LINE_ITEM = "line_item"
    SHIPMENT = "shipment"


class AdjustmentSourceType(str, Enum):
    TAX = "tax"
    PROMOTION = "promotion"


@dataclass(frozen=True)
class TaxCategory:
    """Classification label attached to taxable items, e.g. "Books"."""

    id: int
    name: str
    is_default: bool = False


@dataclass
class Order:
    id: str
    currency: str = "USD"
    completed_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.completed_at is not None


@dataclass(eq=False)
class TaxRate:
    """A tax rate for one tax category within one zone.

    ``amount`` is a decimal fraction (0.07 for 7%). Inclusive rates are
    already embedded in the displayed price; exclusive rates are added on top.
    """

    id: int
    amount: Decimal
    zone: Zone
    tax_category: Optional[TaxCategory]
    included_in_price: bool = False
    calculator: Any = None
    name: Optional[str] = None
    show_rate_in_label: bool = True
    deleted_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.deleted_at is None

    def is_default_vat(self, default_zone: Optional[Zone]) -> bool:
        """True for inclusive rates whose zone covers the default tax zone."""
        return bool(self.included_in_price and self.zone.contains(default_zone))

    @property
    def label(self) -> str:
        parts = [self.name or (self.tax_category.name if self.tax_category else "")]
        if self.show_rate_in_label:
            parts.append(f"{format_percent(self.amount)}%")
        if self.included_in_price:
            parts.append("(Included in Price)")
        return " ".join(parts)

    def __repr__(self) -> str:
        category = self.tax_category.name if self.tax_category else None
        return (
            f"TaxRate(id={self.id!r}, amount={self.amount!r}, zone={self.zone.name!r}, "
            f"tax_category={category!r}, included_in_price={self.included_in_price!r})"
        )


@dataclass(eq=False)
class Adjustment:
    adjustable: "TaxableItem"
    amount: Decimal
    label: str
    source: Optional[TaxRate] = None
    source_type: AdjustmentSourceType = AdjustmentSourceType.TAX
    included: bool = False
    finalized: bool = False
    order: Optional[Order] = None
    id: str = field(default_factory=lambda: f"adj_{uuid.uuid4().hex[:12]}")

    @property
    def is_tax(self) -> bool:
        return self.source_type == AdjustmentSourceType.TAX

    def to_document(self) -> dict:
        return {
            "_id": self.id,
            "adjustable_id": self.adjustable.id,
            "adjustable_type": self.adjustable.kind.value,
            "source_id": self.source.id if self.source is not None else None,
            "source_type": self.source_type.value,
            "order_id": self.order.id if self.order is not None else None,
            "amount": str(self.amount),
            "label": self.label,
            "included": self.included,
            "finalized": self.finalized,
        }


@dataclass(eq=False)
class TaxableItem:
    """A line item or a shipment that tax can be applied to.

    ``amount`` is the undiscounted price (price x quantity for a line item,
    cost for a shipment); ``promo_total`` is zero or negative.
    """

    id: Any
    kind: TaxableKind
    amount: Decimal
    tax_category: Optional[TaxCategory]
    order: Optional[Order] = None
    promo_total: Decimal = ZERO
    pre_tax_amount: Decimal = ZERO
    adjustments: List[Adjustment] = field(default_factory=list)

    @classmethod
    def line_item(cls, id: Any, price: Decimal, quantity: int = 1, tax_category: Optional[TaxCategory] = None,
                  order: Optional[Order] = None, promo_total: Decimal = ZERO) -> "TaxableItem":
        return cls(id=id, kind=TaxableKind.LINE_ITEM, amount=to_decimal(price) * quantity,
                   tax_category=tax_category, order=order, promo_total=to_decimal(promo_total))

    @classmethod
    def shipment(cls, id: Any, cost: Decimal, tax_category: Optional[TaxCategory] = None,
                 order: Optional[Order] = None, promo_total: Decimal = ZERO) -> "TaxableItem":
        return cls(id=id, kind=TaxableKind.SHIPMENT, amount=to_decimal(cost),
                   tax_category=tax_category, order=order, promo_total=to_decimal(promo_total))

    @property
    def discounted_amount(self) -> Decimal:
        return self.amount + self.promo_total

    @property
    def tax_adjustments(self) -> List[Adjustment]:
        return [adj for adj in self.adjustments if adj.is_tax]

    @property
    def included_tax_total(self) -> Decimal:
        return sum((adj.amount for adj in self.tax_adjustments if adj.included), ZERO)

    @property
    def additional_tax_total(self) -> Decimal:
        return sum((adj.amount for adj in self.tax_adjustments if not adj.included), ZERO)

    @property
    def total(self) -> Decimal:
        return self.discounted_amount + self.additional_tax_total

    def __repr__(self) -> str:
        return f"TaxableItem(kind={self.kind.value!r}, id={self.id!r}, amount={self.amount!r})"


def format_percent(amount: Decimal) -> str:
    """Render a rate fraction as a percentage without trailing zeros."""
    percent = (to_decimal(amount) * 100).normalize()
    return f"{percent:f}"


def to_decimal(value: Any) -> Decimal:
    """Convert ``value`` to Decimal, going through str so floats keep their
    printed value (0.07, not its binary expansion)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
