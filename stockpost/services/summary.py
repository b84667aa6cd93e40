from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable


@dataclass(frozen=True)
class ProductUpdate:
    """Reporting side-channel: what an operation did to one product."""

    product_id: int
    name: str
    new_stock: int
    quantity_delta: int
    updated_cost: bool
    cost: Decimal
    updated_price: bool
    price: Decimal

    def as_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "newStock": self.new_stock,
            "quantityDelta": self.quantity_delta,
            "updatedCost": self.updated_cost,
            "cost": self.cost,
            "updatedPrice": self.updated_price,
            "price": self.price,
        }


def merge_updates(updates: Iterable[ProductUpdate]) -> list[ProductUpdate]:
    """
    Union updates by product id, in first-seen order.

    Quantity deltas are summed, flags OR-ed, and the latest stock/cost/price win.
    """
    merged: dict[int, ProductUpdate] = {}
    for u in updates:
        prev = merged.get(u.product_id)
        if prev is None:
            merged[u.product_id] = u
            continue
        merged[u.product_id] = replace(
            u,
            quantity_delta=prev.quantity_delta + u.quantity_delta,
            updated_cost=prev.updated_cost or u.updated_cost,
            updated_price=prev.updated_price or u.updated_price,
        )
    return list(merged.values())
