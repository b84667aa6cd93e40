from __future__ import annotations

from decimal import Decimal
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stockpost.app.api.deps import get_db, get_session_factory
from stockpost.app.db.models.models_v1 import PurchaseOrder
from stockpost.app.db.models.core_types import BulkAction, POStatus
from stockpost.app.schemas.stock_movement import StockMovementRead
from stockpost.services import bulk, lifecycle, ledger, procurement
from stockpost.services.errors import ProductNotFound, SupplierNotFound
from stockpost.services.procurement import ItemInput

router = APIRouter(prefix="/purchases")


class POItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)
    sell_price: Decimal | None = Field(default=None, ge=0)


class POCreate(BaseModel):
    supplier_id: int | None = None
    notes: str | None = None
    items: list[POItemCreate] = Field(default_factory=list)


class POItemsReplace(BaseModel):
    items: list[POItemCreate] = Field(default_factory=list)


class BulkRequest(BaseModel):
    ids: list[int] = Field(min_length=1, max_length=500)


def _items(payload_items: list[POItemCreate]) -> list[ItemInput]:
    return [
        ItemInput(
            product_id=it.product_id,
            quantity=it.quantity,
            unit_cost=it.unit_cost,
            sell_price=it.sell_price,
        )
        for it in payload_items
    ]


def _order_out(po: PurchaseOrder, with_items: bool = True) -> dict:
    out = {
        "id": po.id,
        "number": po.number,
        "supplier_id": po.supplier_id,
        "status": po.status,
        "notes": po.notes,
        "total_value": po.total_value,
        "created_at": po.created_at,
        "finalized_at": po.finalized_at,
        "posted_at": po.posted_at,
        "reversed_at": po.reversed_at,
    }
    if with_items:
        out["items"] = [
            {
                "position": it.position,
                "product_id": it.product_id,
                "description": it.description_snapshot,
                "sku": it.sku_snapshot,
                "quantity": it.quantity,
                "unit_cost": it.unit_cost,
                "line_total": it.line_total,
                "sell_price": it.sell_price,
            }
            for it in po.items
        ]
    return out


def _operation_out(result: lifecycle.OperationResult) -> dict:
    return {
        "id": result.order_id,
        "status": result.status,
        "deleted": result.deleted,
        "updatedProducts": [u.as_dict() for u in result.updated_products],
    }


def _bulk_out(result: bulk.BulkResult) -> dict:
    return {
        "action": result.action,
        "succeeded": result.succeeded,
        "failed": [{"orderId": f.order_id, "code": f.code, "error": f.message} for f in result.failed],
        "skipped": [{"orderId": s.order_id, "status": s.status} for s in result.skipped],
        "updatedProducts": [u.as_dict() for u in result.updated_products],
    }


# --- BULK ---
@router.post("/bulk/{action}/eligible")
def bulk_eligible(action: BulkAction, payload: BulkRequest, db: Session = Depends(get_db)):
    return {"action": action, "ids": bulk.eligible_order_ids(db, action, payload.ids)}


@router.post("/bulk/{action}")
def bulk_run(
    action: BulkAction,
    payload: BulkRequest,
    session_factory: Callable[[], Session] = Depends(get_session_factory),
):
    return _bulk_out(bulk.run_bulk(action, payload.ids, session_factory=session_factory))


# --- LIST / READ ---
@router.get("")
def list_purchases(
    status: POStatus | None = Query(None),
    supplier_id: int | None = Query(None, ge=1),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    rows = procurement.list_orders(db, status=status, supplier_id=supplier_id, skip=skip, limit=limit)
    return [_order_out(po, with_items=False) for po in rows]


@router.get("/{po_id}")
def get_purchase(po_id: int, db: Session = Depends(get_db)):
    return _order_out(procurement.get_order(db, po_id))


@router.get("/{po_id}/movements", response_model=list[StockMovementRead])
def list_purchase_movements(po_id: int, db: Session = Depends(get_db)):
    return ledger.list_order_movements(db, po_id)


# --- AUTHORING ---
@router.post("", status_code=201)
def create_purchase(payload: POCreate, db: Session = Depends(get_db)):
    try:
        po = procurement.create_order(
            db,
            supplier_id=payload.supplier_id,
            notes=payload.notes,
            items=_items(payload.items),
        )
    except (ProductNotFound, SupplierNotFound, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _order_out(po)


@router.put("/{po_id}/items")
def replace_purchase_items(po_id: int, payload: POItemsReplace, db: Session = Depends(get_db)):
    try:
        po = procurement.replace_items(db, po_id, _items(payload.items))
    except (ProductNotFound, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _order_out(po)


@router.post("/{po_id}/finalize")
def finalize_purchase(po_id: int, db: Session = Depends(get_db)):
    return _order_out(procurement.finalize_order(db, po_id))


# --- STOCK WORKFLOW ---
@router.post("/{po_id}/post-stock")
def post_purchase_stock(po_id: int, db: Session = Depends(get_db)):
    return _operation_out(lifecycle.post_stock(db, po_id))


@router.post("/{po_id}/reverse-stock")
def reverse_purchase_stock(po_id: int, db: Session = Depends(get_db)):
    return _operation_out(lifecycle.reverse_stock(db, po_id))


@router.delete("/{po_id}")
def delete_purchase(po_id: int, db: Session = Depends(get_db)):
    """Reverses stock first when the order is STOCK_POSTED."""
    return _operation_out(lifecycle.delete_order(db, po_id))
