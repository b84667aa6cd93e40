from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpost.app.api.deps import get_db
from stockpost.app.db.models.models_v1 import StockMovement
from stockpost.app.schemas.stock_movement import StockMovementRead
from stockpost.services import ledger

router = APIRouter(prefix="/stock-movements")


@router.get("", response_model=list[StockMovementRead])
def list_stock_movements(
    product_id: int | None = Query(None, ge=1),
    purchase_order_id: int | None = Query(None, ge=1),
    after_id: int | None = Query(None, ge=0),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """
    Ledger (READ ONLY)
    - by product: chronological, optionally after a given movement id
    - by purchase order: every posting and reversal the order produced
    """
    if product_id is not None and purchase_order_id is None:
        return ledger.list_product_movements(db, product_id, after_id=after_id, limit=limit)
    if purchase_order_id is None:
        raise HTTPException(status_code=422, detail="product_id or purchase_order_id is required")

    stmt = select(StockMovement).where(StockMovement.purchase_order_id == purchase_order_id)
    if product_id is not None:
        stmt = stmt.where(StockMovement.product_id == product_id)
    if after_id is not None:
        stmt = stmt.where(StockMovement.id > after_id)
    stmt = stmt.order_by(StockMovement.id.asc()).limit(limit)
    return db.execute(stmt).scalars().all()
