"""initial purchasing schema

Revision ID: 5b1f0c2e9a41
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5b1f0c2e9a41"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BIGINT_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

PO_STATUS = sa.Enum("DRAFT", "FINALIZED", "STOCK_POSTED", "STOCK_REVERSED", name="po_status")
MOVEMENT_KIND = sa.Enum("PURCHASE_POST", "PURCHASE_REVERSE", name="movement_kind")
MOVEMENT_DIRECTION = sa.Enum("IN", "OUT", name="movement_direction")


def upgrade() -> None:
    op.create_table(
        "suppliers",
        sa.Column("id", BIGINT_PK, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("document", sa.String(32)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "products",
        sa.Column("id", BIGINT_PK, primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Numeric(14, 4), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("markup_percent", sa.Numeric(7, 4)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_nonneg"),
        sa.CheckConstraint("cost >= 0", name="ck_product_cost_nonneg"),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    op.create_table(
        "purchase_orders",
        sa.Column("id", BIGINT_PK, primary_key=True),
        sa.Column("number", sa.String(32), nullable=False, unique=True),
        sa.Column("supplier_id", sa.BigInteger(), sa.ForeignKey("suppliers.id", ondelete="RESTRICT")),
        sa.Column("status", PO_STATUS, nullable=False, server_default="DRAFT"),
        sa.Column("notes", sa.Text()),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("finalized_at", sa.DateTime(timezone=True)),
        sa.Column("posted_at", sa.DateTime(timezone=True)),
        sa.Column("reversed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_purchase_orders_status", "purchase_orders", ["status"])

    op.create_table(
        "purchase_order_items",
        sa.Column("id", BIGINT_PK, primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("description_snapshot", sa.String(255)),
        sa.Column("sku_snapshot", sa.String(64)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=False),
        sa.Column("line_total", sa.Numeric(14, 2), nullable=False),
        sa.Column("sell_price", sa.Numeric(14, 2)),
        sa.CheckConstraint("quantity > 0", name="ck_po_item_qty_pos"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_po_item_unit_cost_nonneg"),
        sa.CheckConstraint("sell_price IS NULL OR sell_price >= 0", name="ck_po_item_sell_price_nonneg"),
    )
    op.create_index("ix_purchase_order_items_purchase_order_id", "purchase_order_items", ["purchase_order_id"])

    # no FK to purchase_orders: ledger rows survive order deletion
    op.create_table(
        "stock_movements",
        sa.Column("id", BIGINT_PK, primary_key=True),
        sa.Column("kind", MOVEMENT_KIND, nullable=False),
        sa.Column("direction", MOVEMENT_DIRECTION, nullable=False),
        sa.Column("purchase_order_id", sa.BigInteger(), nullable=False),
        sa.Column("purchase_order_number", sa.String(32)),
        sa.Column("item_position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity_applied", sa.Integer(), nullable=False),
        sa.Column("unit_cost_applied", sa.Numeric(14, 4), nullable=False),
        sa.Column("sell_price_applied", sa.Numeric(14, 2)),
        sa.Column("product_stock_before", sa.Integer(), nullable=False),
        sa.Column("product_stock_after", sa.Integer(), nullable=False),
        sa.Column("product_cost_before", sa.Numeric(14, 4), nullable=False),
        sa.Column("product_cost_after", sa.Numeric(14, 4), nullable=False),
        sa.Column("product_price_before", sa.Numeric(14, 2), nullable=False),
        sa.Column("product_price_after", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "reverses_movement_id",
            sa.BigInteger(),
            sa.ForeignKey("stock_movements.id", ondelete="RESTRICT"),
            unique=True,
        ),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity_applied <> 0", name="ck_stock_movement_qty_nonzero"),
    )
    op.create_index("ix_stock_movements_purchase_order_id", "stock_movements", ["purchase_order_id"])
    op.create_index("ix_stock_movements_product_seq", "stock_movements", ["product_id", "id"])


def downgrade() -> None:
    op.drop_index("ix_stock_movements_product_seq", table_name="stock_movements")
    op.drop_index("ix_stock_movements_purchase_order_id", table_name="stock_movements")
    op.drop_table("stock_movements")

    op.drop_index("ix_purchase_order_items_purchase_order_id", table_name="purchase_order_items")
    op.drop_table("purchase_order_items")

    op.drop_index("ix_purchase_orders_status", table_name="purchase_orders")
    op.drop_table("purchase_orders")

    op.drop_table("products")
    op.drop_table("suppliers")

    bind = op.get_bind()
    MOVEMENT_DIRECTION.drop(bind, checkfirst=True)
    MOVEMENT_KIND.drop(bind, checkfirst=True)
    PO_STATUS.drop(bind, checkfirst=True)
