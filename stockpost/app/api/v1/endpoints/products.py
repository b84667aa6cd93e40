from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpost.app.api.deps import get_db
from stockpost.app.db.models.models_v1 import Product
from stockpost.services.inventory import to_cost, to_money

router = APIRouter(prefix="/products")


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    stock: int = Field(default=0, ge=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    markup_percent: Decimal | None = Field(default=None, ge=0)


def _product_out(p: Product) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "stock": p.stock,
        "cost": p.cost,
        "price": p.price,
        "markup_percent": p.markup_percent,
    }


@router.get("")
def list_products(db: Session = Depends(get_db)):
    rows = db.execute(select(Product).order_by(Product.sku)).scalars().all()
    return [_product_out(p) for p in rows]


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    p = db.get(Product, product_id)
    if not p:
        raise HTTPException(status_code=404, detail="Product not found")
    return _product_out(p)


@router.post("", status_code=201)
def create_product(payload: ProductCreate, db: Session = Depends(get_db)):
    exists = db.execute(select(Product).where(Product.sku == payload.sku)).scalar_one_or_none()
    if exists:
        raise HTTPException(status_code=409, detail="SKU already exists")

    p = Product(
        sku=payload.sku,
        name=payload.name,
        stock=payload.stock,
        cost=to_cost(payload.cost),
        price=to_money(payload.price),
        markup_percent=payload.markup_percent,
    )
    db.add(p)
    db.commit()
    db.refresh(p)

    return _product_out(p)
