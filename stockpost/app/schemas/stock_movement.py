from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from stockpost.app.db.models.core_types import MovementDirection, MovementKind


class StockMovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: MovementKind
    direction: MovementDirection
    purchase_order_id: int
    purchase_order_number: str | None
    item_position: int
    product_id: int

    quantity_applied: int  # signed: > 0 posting, < 0 reversal
    unit_cost_applied: Decimal
    sell_price_applied: Decimal | None

    product_stock_before: int
    product_stock_after: int
    product_cost_before: Decimal
    product_cost_after: Decimal
    product_price_before: Decimal
    product_price_after: Decimal

    reverses_movement_id: int | None
    applied_at: datetime
