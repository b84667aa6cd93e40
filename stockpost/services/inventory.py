from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpost.app.db.models.models_v1 import Product

COST_PLACES = Decimal("0.0001")
MONEY_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(val) -> Decimal:
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a valid decimal: {val!r}")


def to_cost(val) -> Decimal:
    return to_decimal(val).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


def to_money(val) -> Decimal:
    return to_decimal(val).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def line_total(quantity: int, unit_cost) -> Decimal:
    return to_money(Decimal(int(quantity)) * to_decimal(unit_cost))


def order_total(items) -> Decimal:
    return to_money(sum((line_total(i.quantity, i.unit_cost) for i in items), ZERO))


def weighted_average_cost(stock: int, cost: Decimal, quantity: int, unit_cost: Decimal) -> Decimal:
    """
    Blend the current unit cost with an incoming lot.

        new_cost = (stock * cost + quantity * unit_cost) / (stock + quantity)

    An empty (or negative) starting stock contributes nothing: the lot cost wins.
    """
    if stock <= 0:
        return to_cost(unit_cost)
    new_stock = stock + quantity
    if new_stock <= 0:
        return to_cost(unit_cost)
    total = Decimal(stock) * to_decimal(cost) + Decimal(quantity) * to_decimal(unit_cost)
    return to_cost(total / Decimal(new_stock))


def markup_price(cost: Decimal, markup_percent: Decimal) -> Decimal:
    return to_money(to_decimal(cost) * (Decimal("1") + to_decimal(markup_percent)))


@dataclass(frozen=True)
class ProductState:
    stock: int
    cost: Decimal
    price: Decimal


def lock_product(db: Session, product_id: int) -> Product | None:
    """
    Read a product row for update.

    Row lock on databases that support it, plus fresh attribute values even if
    the product is already in the session's identity map.
    """
    return (
        db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .one_or_none()
    )


def lock_products(db: Session, product_ids) -> list[Product]:
    """
    Lock every product an order touches, lowest id first.

    Two orders sharing products then always queue in the same order; the
    per-item ``lock_product`` calls that follow re-enter locks already held.
    """
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return []
    return list(
        db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )


def snapshot(product: Product) -> ProductState:
    return ProductState(
        stock=int(product.stock or 0),
        cost=to_cost(product.cost or ZERO),
        price=to_money(product.price or ZERO),
    )


def apply_state(db: Session, product: Product, state: ProductState) -> None:
    product.stock = state.stock
    product.cost = state.cost
    product.price = state.price
    db.add(product)
    # the version counter check runs on flush; surface conflicts per item
    db.flush()
