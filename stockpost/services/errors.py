"""
Typed errors raised by the posting/reversal services.

Every error carries a machine-readable ``code`` and the structured fields a
caller needs, so API handlers and the bulk coordinator never parse messages.

    StockPostError
    +-- InvalidTransition
    +-- OrderNotFound
    +-- ProductNotFound
    +-- SupplierNotFound
    +-- InsufficientStockForReversal
    +-- ConcurrencyConflict      (retryable)
"""

from __future__ import annotations


class StockPostError(Exception):
    code: str = "STOCK_POST_ERROR"
    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransition(StockPostError):
    code = "INVALID_TRANSITION"

    def __init__(self, order_id: int, status: str, operation: str):
        self.order_id = order_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} purchase order {order_id} in status {status}")


class OrderNotFound(StockPostError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Purchase order {order_id} not found")


class ProductNotFound(StockPostError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int, order_id: int | None = None):
        self.product_id = product_id
        self.order_id = order_id
        suffix = f" (purchase order {order_id})" if order_id is not None else ""
        super().__init__(f"Product {product_id} not found{suffix}")


class SupplierNotFound(StockPostError):
    code = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: int):
        self.supplier_id = supplier_id
        super().__init__(f"Supplier {supplier_id} not found")


class InsufficientStockForReversal(StockPostError):
    code = "INSUFFICIENT_STOCK_FOR_REVERSAL"

    def __init__(self, order_id: int, product_id: int, stock: int, quantity: int):
        self.order_id = order_id
        self.product_id = product_id
        self.stock = stock
        self.quantity = quantity
        super().__init__(
            f"Cannot reverse purchase order {order_id}: product {product_id} has "
            f"stock {stock}, reversal needs {quantity}"
        )


class ConcurrencyConflict(StockPostError):
    code = "CONCURRENCY_CONFLICT"
    retryable = True

    def __init__(self, order_id: int, detail: str = "concurrent update of a product row"):
        self.order_id = order_id
        super().__init__(f"Purchase order {order_id}: {detail}; retry the operation")
