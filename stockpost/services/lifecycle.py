"""
Purchase order lifecycle controller.

The only entry point allowed to run the posting and reversal engines. Each
operation is one transaction:

    status compare-and-swap -> engine (items, ledger, products) -> commit

The compare-and-swap is a conditional ``UPDATE ... WHERE status IN (...)``; of
two concurrent requests for the same order exactly one sees ``rowcount == 1``,
the other gets ``InvalidTransition``. Any failure rolls the whole order back,
status included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockpost.app.core.config import Settings, get_settings
from stockpost.app.db.models.models_v1 import PurchaseOrder, PurchaseOrderItem, utcnow
from stockpost.app.db.models.core_types import (
    POStatus,
    POSTABLE_STATUSES,
    REVERSIBLE_STATUSES,
)
from stockpost.services.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    OrderNotFound,
    StockPostError,
)
from stockpost.services.posting import post_order
from stockpost.services.reversal import reverse_order
from stockpost.services.summary import ProductUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure / deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass
class OperationResult:
    order_id: int
    status: POStatus | None
    updated_products: list[ProductUpdate] = field(default_factory=list)
    deleted: bool = False


def _status_value(status) -> str:
    return getattr(status, "value", str(status))


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _lost_transition(db: Session, order_id: int, operation: str) -> StockPostError:
    current = db.execute(
        select(PurchaseOrder.status).where(PurchaseOrder.id == order_id)
    ).scalar_one_or_none()
    if current is None:
        return OrderNotFound(order_id)
    return InvalidTransition(order_id, _status_value(current), operation)


def claim_status(
    db: Session,
    order_id: int,
    *,
    allowed: Iterable[POStatus],
    new_status: POStatus,
    operation: str,
    **stamps,
) -> PurchaseOrder:
    """Compare-and-swap the order status; return the freshly loaded order."""
    res = db.execute(
        update(PurchaseOrder)
        .where(PurchaseOrder.id == order_id)
        .where(PurchaseOrder.status.in_(list(allowed)))
        .values(status=new_status, updated_at=utcnow(), **stamps)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise _lost_transition(db, order_id, operation)

    return db.get(PurchaseOrder, order_id, populate_existing=True)


def lock_order(db: Session, order_id: int) -> PurchaseOrder | None:
    return (
        db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .one_or_none()
    )


def run_in_transaction(db: Session, order_id: int, operation: str, work: Callable[[], T]) -> T:
    try:
        result = work()
        db.commit()
        return result
    except StaleDataError:
        db.rollback()
        logger.warning("%s conflict (po=%s): product row changed concurrently", operation, order_id)
        raise ConcurrencyConflict(order_id)
    except StockPostError as e:
        db.rollback()
        logger.warning("%s rejected (po=%s): %s %s", operation, order_id, e.code, e)
        raise
    except DBAPIError as e:
        db.rollback()
        if _sqlstate(e) in _RETRYABLE_SQLSTATES:
            logger.warning("%s conflict (po=%s): sqlstate=%s", operation, order_id, _sqlstate(e))
            raise ConcurrencyConflict(order_id, detail="transaction serialization failure") from e
        logger.exception("%s error (po=%s)", operation, order_id)
        raise
    except Exception:
        db.rollback()
        logger.exception("%s error (po=%s)", operation, order_id)
        raise


def post_stock(db: Session, order_id: int) -> OperationResult:
    """DRAFT / FINALIZED / STOCK_REVERSED -> STOCK_POSTED."""

    def work() -> OperationResult:
        po = claim_status(
            db,
            order_id,
            allowed=POSTABLE_STATUSES,
            new_status=POStatus.stock_posted,
            operation="post stock for",
            posted_at=utcnow(),
        )
        updates = post_order(db, po)
        return OperationResult(order_id=order_id, status=POStatus.stock_posted, updated_products=updates)

    result = run_in_transaction(db, order_id, "post_stock", work)
    logger.info("stock posted: po=%s products=%s", order_id, len(result.updated_products))
    return result


def reverse_stock(db: Session, order_id: int, *, settings: Settings | None = None) -> OperationResult:
    """STOCK_POSTED -> DRAFT (or the configured STOCK_REVERSED label)."""
    target = (settings or get_settings()).reversal_status

    def work() -> OperationResult:
        po = claim_status(
            db,
            order_id,
            allowed=REVERSIBLE_STATUSES,
            new_status=target,
            operation="reverse stock for",
            reversed_at=utcnow(),
        )
        updates = reverse_order(db, po)
        return OperationResult(order_id=order_id, status=target, updated_products=updates)

    result = run_in_transaction(db, order_id, "reverse_stock", work)
    logger.info("stock reversed: po=%s products=%s", order_id, len(result.updated_products))
    return result


def delete_order(db: Session, order_id: int, *, settings: Settings | None = None) -> OperationResult:
    """
    Hard-delete an order from any status.

    A posted order is reversed first in the same transaction; if the reversal
    fails nothing is deleted.
    """
    target = (settings or get_settings()).reversal_status

    def work() -> OperationResult:
        po = lock_order(db, order_id)
        if not po:
            raise OrderNotFound(order_id)

        updates: list[ProductUpdate] = []
        seen = po.status
        if seen == POStatus.stock_posted:
            po = claim_status(
                db,
                order_id,
                allowed=REVERSIBLE_STATUSES,
                new_status=target,
                operation="delete",
                reversed_at=utcnow(),
            )
            updates = reverse_order(db, po)
            seen = target

        # only delete the order in the status it was read in; a post that
        # slipped in since then must be reversed first
        res = db.execute(
            delete(PurchaseOrder)
            .where(PurchaseOrder.id == order_id)
            .where(PurchaseOrder.status == seen)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise _lost_transition(db, order_id, "delete")

        db.execute(
            delete(PurchaseOrderItem)
            .where(PurchaseOrderItem.purchase_order_id == order_id)
            .execution_options(synchronize_session=False)
        )
        db.expunge(po)
        return OperationResult(order_id=order_id, status=None, updated_products=updates, deleted=True)

    result = run_in_transaction(db, order_id, "delete_order", work)
    logger.info("purchase order deleted: po=%s reversed_products=%s", order_id, len(result.updated_products))
    return result
