from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockpost.app.db.base import Base, BigIntPK
from stockpost.app.db.models.core_types import MovementDirection, MovementKind, POStatus


def _enum(enum_cls, name: str) -> Enum:
    # persist the enum values ("STOCK_POSTED"), not the member names
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- MASTER DATA ----------
class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    document: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # weighted-average unit cost
    cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    # markup policy: price = cost * (1 + markup_percent) when set (0.30 == 30%)
    markup_percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4))

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_nonneg"),
        CheckConstraint("cost >= 0", name="ck_product_cost_nonneg"),
        CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    @property
    def markup_enabled(self) -> bool:
        return self.markup_percent is not None


# ---------- PROCUREMENT ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    # NULL supplier == walk-in supplier
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("suppliers.id", ondelete="RESTRICT"))
    status: Mapped[POStatus] = mapped_column(
        _enum(POStatus, "po_status"),
        default=POStatus.draft,
        nullable=False,
        index=True,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    total_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    supplier: Mapped[Supplier | None] = relationship()
    items: Mapped[list["PurchaseOrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.position",
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    description_snapshot: Mapped[str | None] = mapped_column(String(255))
    sku_snapshot: Mapped[str | None] = mapped_column(String(64))

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    # explicit sale price to apply on posting (overrides the markup policy)
    sell_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    order: Mapped[PurchaseOrder] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        CheckConstraint("unit_cost >= 0", name="ck_po_item_unit_cost_nonneg"),
        CheckConstraint("sell_price IS NULL OR sell_price >= 0", name="ck_po_item_sell_price_nonneg"),
    )


# ---------- LEDGER ----------
class StockMovement(Base):
    """
    Append-only record of one purchase order's effect on one product.

    No foreign key to purchase_orders: the ledger outlives deleted orders.
    """

    __tablename__ = "stock_movements"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    kind: Mapped[MovementKind] = mapped_column(_enum(MovementKind, "movement_kind"), nullable=False)
    direction: Mapped[MovementDirection] = mapped_column(
        _enum(MovementDirection, "movement_direction"),
        nullable=False,
    )
    purchase_order_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    purchase_order_number: Mapped[str | None] = mapped_column(String(32))
    item_position: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    quantity_applied: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost_applied: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    sell_price_applied: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    product_stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    product_stock_after: Mapped[int] = mapped_column(Integer, nullable=False)
    product_cost_before: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    product_cost_after: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    product_price_before: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    product_price_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    # set on the compensating entry only
    reverses_movement_id: Mapped[int | None] = mapped_column(
        ForeignKey("stock_movements.id", ondelete="RESTRICT"),
        unique=True,
    )
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_applied <> 0", name="ck_stock_movement_qty_nonzero"),
        Index("ix_stock_movements_product_seq", "product_id", "id"),
    )

    @property
    def is_forward(self) -> bool:
        return self.kind == MovementKind.purchase_post
