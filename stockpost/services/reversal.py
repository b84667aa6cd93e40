"""
Reversal engine.

Undoes one purchase order's posting using the ledger as the source of truth.

Stock is additive, so reversing a posting simply takes its quantity back out
(never below zero). Cost and price are not: when nothing touched the product
after the posting, the recorded before-values are restored; otherwise the
weighted-average history is recomputed without the reversed posting
(strip-and-replay), so the newer contributions of other orders survive.

Like the posting engine, this module never commits.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from stockpost.app.db.models.models_v1 import Product, PurchaseOrder, StockMovement
from stockpost.app.db.models.core_types import MovementKind
from stockpost.services import ledger
from stockpost.services.errors import InsufficientStockForReversal, ProductNotFound
from stockpost.services.inventory import (
    ProductState,
    apply_state,
    lock_product,
    lock_products,
    markup_price,
    snapshot,
    to_cost,
    to_money,
    weighted_average_cost,
)
from stockpost.services.summary import ProductUpdate, merge_updates

logger = logging.getLogger(__name__)

# marks the posting being reversed right now: its compensating entry comes last
_PENDING = float("inf")


def _replay_anchor(postings: list[StockMovement], reversed_by: dict[int, int], target: StockMovement) -> StockMovement:
    """
    Earliest posting whose before-snapshot can seed the replay.

    A posting's snapshot is stale when an earlier posting was reversed after it
    was written (the snapshot still contains that contribution). Walk back
    until no such earlier posting exists.
    """
    anchor = target
    while True:
        stale = [
            p for p in postings
            if p.id < anchor.id and reversed_by.get(p.id, 0) > anchor.id
        ]
        if not stale:
            return anchor
        anchor = min(stale, key=lambda p: p.id)


def replay_without(db: Session, product: Product, target: StockMovement) -> tuple[Decimal, Decimal]:
    """Cost and price of ``product`` as if ``target`` had never been posted."""
    history = ledger.list_product_movements(db, product.id)
    postings = [mv for mv in history if mv.is_forward]
    reversed_by: dict[int, float] = dict(ledger.reversal_ids_by_posting(db, product.id))

    anchor = _replay_anchor(postings, reversed_by, target)
    reversed_by[target.id] = _PENDING

    cost = to_cost(anchor.product_cost_before)
    price = to_money(anchor.product_price_before)
    window = [p for p in postings if p.id >= anchor.id]

    for p in window:
        if p.id in reversed_by:
            continue
        # quantities stripped from the window that were still on hand when p was posted
        stripped = sum(
            q.quantity_applied
            for q in window
            if q.id < p.id and q.id in reversed_by and reversed_by[q.id] > p.id
        )
        stock_at = max(int(p.product_stock_before) - stripped, 0)
        cost = weighted_average_cost(stock_at, cost, int(p.quantity_applied), p.unit_cost_applied)
        if p.sell_price_applied is not None:
            price = to_money(p.sell_price_applied)
        elif product.markup_enabled:
            price = markup_price(cost, product.markup_percent)

    logger.debug(
        "replayed product=%s without movement=%s from anchor=%s: cost=%s price=%s",
        product.id, target.id, anchor.id, cost, price,
    )
    return cost, price


def reverse_movement(db: Session, po: PurchaseOrder, mv: StockMovement) -> ProductUpdate:
    product = lock_product(db, mv.product_id)
    if not product:
        raise ProductNotFound(mv.product_id, order_id=po.id)

    before = snapshot(product)
    qty = int(mv.quantity_applied)
    if before.stock < qty:
        raise InsufficientStockForReversal(po.id, product.id, before.stock, qty)

    if ledger.has_entries_after(db, product.id, mv.id):
        cost, price = replay_without(db, product, mv)
    else:
        cost, price = to_cost(mv.product_cost_before), to_money(mv.product_price_before)

    after = ProductState(stock=before.stock - qty, cost=cost, price=price)

    ledger.append_movement(
        db,
        kind=MovementKind.purchase_reverse,
        purchase_order_id=po.id,
        purchase_order_number=po.number,
        item_position=mv.item_position,
        product_id=product.id,
        quantity_applied=-qty,
        unit_cost_applied=mv.unit_cost_applied,
        stock_before=before.stock,
        stock_after=after.stock,
        cost_before=before.cost,
        cost_after=after.cost,
        price_before=before.price,
        price_after=after.price,
        reverses_movement_id=mv.id,
    )
    apply_state(db, product, after)

    logger.debug(
        "reversed movement=%s: po=%s product=%s qty=%s stock %s->%s cost %s->%s",
        mv.id, po.id, product.id, qty, before.stock, after.stock, before.cost, after.cost,
    )
    return ProductUpdate(
        product_id=product.id,
        name=product.name,
        new_stock=after.stock,
        quantity_delta=-qty,
        updated_cost=after.cost != before.cost,
        cost=after.cost,
        updated_price=after.price != before.price,
        price=after.price,
    )


def reverse_order(db: Session, po: PurchaseOrder) -> list[ProductUpdate]:
    """Compensate every active posting of ``po``, in posting order."""
    movements = ledger.active_order_postings(db, po.id)
    lock_products(db, (mv.product_id for mv in movements))
    updates = [reverse_movement(db, po, mv) for mv in movements]
    return merge_updates(updates)
