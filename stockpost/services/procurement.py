"""
Procurement service.

Authoring side of purchase orders: numbering, item capture, editing and
finalization. Stock, cost and price are never touched here; that belongs to
the lifecycle controller and its engines.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockpost.app.core.config import get_settings
from stockpost.app.db.models.models_v1 import (
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Supplier,
    utcnow,
)
from stockpost.app.db.models.core_types import EDITABLE_STATUSES, POStatus
from stockpost.services.errors import InvalidTransition, OrderNotFound, ProductNotFound, SupplierNotFound
from stockpost.services.inventory import line_total, order_total, to_cost, to_money
from stockpost.services.lifecycle import claim_status, lock_order, run_in_transaction

logger = logging.getLogger(__name__)

NUMBER_DIGITS = 6
NUMBER_ATTEMPTS = 3


@dataclass(frozen=True)
class ItemInput:
    product_id: int
    quantity: int
    # None keeps the product's current cost
    unit_cost: Decimal | None = None
    sell_price: Decimal | None = None


def next_order_number(db: Session, prefix: str | None = None) -> str:
    prefix = prefix if prefix is not None else get_settings().order_number_prefix
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    numbers = db.execute(
        select(PurchaseOrder.number).where(PurchaseOrder.number.like(f"{prefix}%"))
    ).scalars().all()

    highest = 0
    for number in numbers:
        m = pattern.match(number)
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{prefix}{highest + 1:0{NUMBER_DIGITS}d}"


def _build_items(db: Session, items: Iterable[ItemInput]) -> list[PurchaseOrderItem]:
    out = []
    for position, it in enumerate(items, start=1):
        if int(it.quantity) <= 0:
            raise ValueError(f"Item {position}: quantity must be > 0")

        product = db.get(Product, it.product_id)
        if not product:
            raise ProductNotFound(it.product_id)

        unit_cost = to_cost(it.unit_cost if it.unit_cost is not None else product.cost)
        if unit_cost < 0:
            raise ValueError(f"Item {position}: unit_cost must be >= 0")
        sell_price = to_money(it.sell_price) if it.sell_price is not None else None
        if sell_price is not None and sell_price < 0:
            raise ValueError(f"Item {position}: sell_price must be >= 0")

        out.append(
            PurchaseOrderItem(
                position=position,
                product_id=product.id,
                description_snapshot=product.name,
                sku_snapshot=product.sku,
                quantity=int(it.quantity),
                unit_cost=unit_cost,
                line_total=line_total(it.quantity, unit_cost),
                sell_price=sell_price,
            )
        )
    return out


def create_order(
    db: Session,
    *,
    items: Iterable[ItemInput],
    supplier_id: int | None = None,
    notes: str | None = None,
    number: str | None = None,
) -> PurchaseOrder:
    items = list(items)
    attempts = 1 if number else NUMBER_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            if supplier_id is not None and not db.get(Supplier, supplier_id):
                raise SupplierNotFound(supplier_id)

            po = PurchaseOrder(
                number=number or next_order_number(db),
                supplier_id=supplier_id,
                status=POStatus.draft,
                notes=notes,
            )
            po.items = _build_items(db, items)
            po.total_value = order_total(po.items)
            db.add(po)
            db.commit()
            db.refresh(po)
            logger.info("purchase order created: po=%s number=%s items=%s", po.id, po.number, len(po.items))
            return po
        except IntegrityError:
            # lost the race for a generated number
            db.rollback()
            if attempt == attempts:
                raise
            logger.info("order number collision, retrying (attempt %s/%s)", attempt, attempts)
        except Exception:
            db.rollback()
            raise


def get_order(db: Session, order_id: int) -> PurchaseOrder:
    po = db.get(PurchaseOrder, order_id)
    if not po:
        raise OrderNotFound(order_id)
    return po


def list_orders(
    db: Session,
    *,
    status: POStatus | None = None,
    supplier_id: int | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[PurchaseOrder]:
    stmt = select(PurchaseOrder)
    if status is not None:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    stmt = stmt.order_by(PurchaseOrder.id.desc()).offset(max(0, skip)).limit(min(max(1, limit), 500))
    return list(db.execute(stmt).scalars().all())


def replace_items(db: Session, order_id: int, items: Iterable[ItemInput]) -> PurchaseOrder:
    """Swap the item list of an editable (DRAFT / STOCK_REVERSED) order."""
    items = list(items)

    def work() -> PurchaseOrder:
        po = lock_order(db, order_id)
        if not po:
            raise OrderNotFound(order_id)
        if po.status not in EDITABLE_STATUSES:
            raise InvalidTransition(order_id, po.status.value, "edit items of")

        po.items.clear()
        db.flush()
        po.items.extend(_build_items(db, items))
        po.total_value = order_total(po.items)
        db.add(po)
        db.flush()
        return po

    po = run_in_transaction(db, order_id, "replace_items", work)
    db.refresh(po)
    logger.info("purchase order items replaced: po=%s items=%s", order_id, len(po.items))
    return po


def finalize_order(db: Session, order_id: int) -> PurchaseOrder:
    """DRAFT -> FINALIZED: items are frozen, stock still pending."""

    def work() -> PurchaseOrder:
        return claim_status(
            db,
            order_id,
            allowed={POStatus.draft},
            new_status=POStatus.finalized,
            operation="finalize",
            finalized_at=utcnow(),
        )

    po = run_in_transaction(db, order_id, "finalize_order", work)
    logger.info("purchase order finalized: po=%s", order_id)
    return po
