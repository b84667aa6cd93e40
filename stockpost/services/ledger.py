"""
Ledger store.

Append-only access to ``stock_movements``. Chronological order for a product is
the id order; a forward (PURCHASE_POST) entry stays *active* until a
PURCHASE_REVERSE entry points at it through ``reverses_movement_id``.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import exists, select
from sqlalchemy.orm import Session, aliased

from stockpost.app.db.models.models_v1 import StockMovement
from stockpost.app.db.models.core_types import MovementDirection, MovementKind


def append_movement(
    db: Session,
    *,
    kind: MovementKind,
    purchase_order_id: int,
    purchase_order_number: str | None,
    item_position: int,
    product_id: int,
    quantity_applied: int,
    unit_cost_applied: Decimal,
    stock_before: int,
    stock_after: int,
    cost_before: Decimal,
    cost_after: Decimal,
    price_before: Decimal,
    price_after: Decimal,
    sell_price_applied: Decimal | None = None,
    reverses_movement_id: int | None = None,
) -> StockMovement:
    mv = StockMovement(
        kind=kind,
        direction=MovementDirection.inbound if quantity_applied > 0 else MovementDirection.outbound,
        purchase_order_id=purchase_order_id,
        purchase_order_number=purchase_order_number,
        item_position=item_position,
        product_id=product_id,
        quantity_applied=quantity_applied,
        unit_cost_applied=unit_cost_applied,
        sell_price_applied=sell_price_applied,
        product_stock_before=stock_before,
        product_stock_after=stock_after,
        product_cost_before=cost_before,
        product_cost_after=cost_after,
        product_price_before=price_before,
        product_price_after=price_after,
        reverses_movement_id=reverses_movement_id,
    )
    db.add(mv)
    # ids drive chronological order, assign them right away
    db.flush()
    return mv


def list_order_movements(db: Session, order_id: int) -> list[StockMovement]:
    return list(
        db.execute(
            select(StockMovement)
            .where(StockMovement.purchase_order_id == order_id)
            .order_by(StockMovement.id.asc())
        )
        .scalars()
        .all()
    )


def active_order_postings(db: Session, order_id: int) -> list[StockMovement]:
    """Forward entries of ``order_id`` not yet compensated, in posting order."""
    reversal = aliased(StockMovement)
    return list(
        db.execute(
            select(StockMovement)
            .where(StockMovement.purchase_order_id == order_id)
            .where(StockMovement.kind == MovementKind.purchase_post)
            .where(~exists().where(reversal.reverses_movement_id == StockMovement.id))
            .order_by(StockMovement.id.asc())
        )
        .scalars()
        .all()
    )


def list_product_movements(
    db: Session,
    product_id: int,
    *,
    after_id: int | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    stmt = select(StockMovement).where(StockMovement.product_id == product_id)
    if after_id is not None:
        stmt = stmt.where(StockMovement.id > after_id)
    stmt = stmt.order_by(StockMovement.id.asc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars().all())


def has_entries_after(db: Session, product_id: int, movement_id: int) -> bool:
    row = db.execute(
        select(StockMovement.id)
        .where(StockMovement.product_id == product_id)
        .where(StockMovement.id > movement_id)
        .limit(1)
    ).first()
    return row is not None


def reversal_ids_by_posting(db: Session, product_id: int) -> dict[int, int]:
    """Map forward movement id -> id of the entry that reversed it."""
    rows = db.execute(
        select(StockMovement.reverses_movement_id, StockMovement.id)
        .where(StockMovement.product_id == product_id)
        .where(StockMovement.reverses_movement_id.is_not(None))
    ).all()
    return {int(fwd): int(rev) for fwd, rev in rows}
