"""
Posting engine.

Moves a purchase order's items into the catalog: stock goes up, the
weighted-average cost is recomputed and the sale price follows the item's
explicit sell price or the product's markup policy. Each item leaves one
PURCHASE_POST entry in the ledger carrying before/after snapshots.

The caller owns the transaction and the status transition; this module never
commits.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from stockpost.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderItem, Product
from stockpost.app.db.models.core_types import MovementKind
from stockpost.services import ledger
from stockpost.services.errors import ProductNotFound
from stockpost.services.inventory import (
    ProductState,
    apply_state,
    lock_product,
    lock_products,
    markup_price,
    order_total,
    snapshot,
    to_cost,
    to_money,
    weighted_average_cost,
)
from stockpost.services.summary import ProductUpdate, merge_updates

logger = logging.getLogger(__name__)


def next_price(product: Product, item: PurchaseOrderItem, new_cost, current_price):
    if item.sell_price is not None:
        return to_money(item.sell_price)
    if product.markup_enabled:
        return markup_price(new_cost, product.markup_percent)
    return current_price


def post_item(db: Session, po: PurchaseOrder, item: PurchaseOrderItem) -> ProductUpdate:
    product = lock_product(db, item.product_id)
    if not product:
        raise ProductNotFound(item.product_id, order_id=po.id)

    before = snapshot(product)
    qty = int(item.quantity)
    unit_cost = to_cost(item.unit_cost)

    new_cost = weighted_average_cost(before.stock, before.cost, qty, unit_cost)
    after = ProductState(
        stock=before.stock + qty,
        cost=new_cost,
        price=next_price(product, item, new_cost, before.price),
    )

    ledger.append_movement(
        db,
        kind=MovementKind.purchase_post,
        purchase_order_id=po.id,
        purchase_order_number=po.number,
        item_position=item.position,
        product_id=product.id,
        quantity_applied=qty,
        unit_cost_applied=unit_cost,
        sell_price_applied=to_money(item.sell_price) if item.sell_price is not None else None,
        stock_before=before.stock,
        stock_after=after.stock,
        cost_before=before.cost,
        cost_after=after.cost,
        price_before=before.price,
        price_after=after.price,
    )
    apply_state(db, product, after)

    logger.debug(
        "posted item: po=%s product=%s qty=%s stock %s->%s cost %s->%s price %s->%s",
        po.id, product.id, qty, before.stock, after.stock,
        before.cost, after.cost, before.price, after.price,
    )
    return ProductUpdate(
        product_id=product.id,
        name=product.name,
        new_stock=after.stock,
        quantity_delta=qty,
        updated_cost=after.cost != before.cost,
        cost=after.cost,
        updated_price=after.price != before.price,
        price=after.price,
    )


def post_order(db: Session, po: PurchaseOrder) -> list[ProductUpdate]:
    """Apply every item of ``po`` in item order and refresh its total."""
    lock_products(db, (item.product_id for item in po.items))
    updates = [post_item(db, po, item) for item in po.items]
    po.total_value = order_total(po.items)
    db.add(po)
    return merge_updates(updates)
