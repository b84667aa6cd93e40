"""
Bulk operation coordinator.

Fans one action (post / reverse / delete) out over a set of purchase orders.
Every order runs through the lifecycle controller in its own session and
transaction; a failing order never rolls back or blocks the others.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpost.app.core.config import Settings, get_settings
from stockpost.app.db.models.models_v1 import PurchaseOrder
from stockpost.app.db.models.core_types import BULK_ELIGIBILITY, BulkAction
from stockpost.app.db.session import SessionLocal
from stockpost.services import lifecycle
from stockpost.services.errors import ConcurrencyConflict, OrderNotFound, StockPostError
from stockpost.services.summary import ProductUpdate, merge_updates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkFailure:
    order_id: int
    code: str
    message: str


@dataclass(frozen=True)
class BulkSkip:
    order_id: int
    status: str


@dataclass
class BulkResult:
    action: BulkAction
    succeeded: list[int] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)
    skipped: list[BulkSkip] = field(default_factory=list)
    updated_products: list[ProductUpdate] = field(default_factory=list)


def _unique(order_ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    out = []
    for oid in order_ids:
        oid = int(oid)
        if oid not in seen:
            seen.add(oid)
            out.append(oid)
    return out


def _statuses(db: Session, order_ids: list[int]) -> dict[int, object]:
    if not order_ids:
        return {}
    rows = db.execute(
        select(PurchaseOrder.id, PurchaseOrder.status).where(PurchaseOrder.id.in_(order_ids))
    ).all()
    return {int(oid): status for oid, status in rows}


def eligible_order_ids(db: Session, action: BulkAction, order_ids: Iterable[int]) -> list[int]:
    """Subset of ``order_ids`` the action may be applied to, in input order."""
    ids = _unique(order_ids)
    statuses = _statuses(db, ids)
    allowed = BULK_ELIGIBILITY[BulkAction(action)]
    return [oid for oid in ids if oid in statuses and statuses[oid] in allowed]


def _operation(action: BulkAction, settings: Settings) -> Callable[[Session, int], lifecycle.OperationResult]:
    if action == BulkAction.post:
        return lifecycle.post_stock
    if action == BulkAction.reverse:
        return lambda db, oid: lifecycle.reverse_stock(db, oid, settings=settings)
    return lambda db, oid: lifecycle.delete_order(db, oid, settings=settings)


def _run_one(
    op: Callable[[Session, int], lifecycle.OperationResult],
    order_id: int,
    session_factory: Callable[[], Session],
    retries: int,
) -> lifecycle.OperationResult:
    attempt = 0
    while True:
        attempt += 1
        db = session_factory()
        try:
            return op(db, order_id)
        except ConcurrencyConflict:
            if attempt > retries:
                raise
            logger.info("retrying po=%s after conflict (attempt %s/%s)", order_id, attempt, retries + 1)
        finally:
            db.close()


def run_bulk(
    action: BulkAction | str,
    order_ids: Iterable[int],
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    settings: Settings | None = None,
    max_workers: int | None = None,
) -> BulkResult:
    settings = settings or get_settings()
    action = BulkAction(action)
    ids = _unique(order_ids)
    result = BulkResult(action=action)

    db = session_factory()
    try:
        statuses = _statuses(db, ids)
    finally:
        db.close()

    allowed = BULK_ELIGIBILITY[action]
    todo: list[int] = []
    for oid in ids:
        status = statuses.get(oid)
        if status is None:
            err = OrderNotFound(oid)
            result.failed.append(BulkFailure(order_id=oid, code=err.code, message=str(err)))
        elif status not in allowed:
            result.skipped.append(BulkSkip(order_id=oid, status=getattr(status, "value", str(status))))
        else:
            todo.append(oid)

    op = _operation(action, settings)
    workers = max(1, min(max_workers or settings.bulk_max_workers, len(todo) or 1))

    def attempt(oid: int):
        try:
            return oid, _run_one(op, oid, session_factory, settings.conflict_retries), None
        except StockPostError as e:
            return oid, None, BulkFailure(order_id=oid, code=e.code, message=str(e))
        except Exception as e:
            # already logged with traceback by the controller
            return oid, None, BulkFailure(order_id=oid, code="INTERNAL_ERROR", message=f"{type(e).__name__}: {e}")

    # outcomes in completion order: the last order to commit holds the
    # current stock/cost/price of the products it touched
    if workers == 1:
        outcomes = [attempt(oid) for oid in todo]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stockpost-bulk") as pool:
            futures = [pool.submit(attempt, oid) for oid in todo]
            outcomes = [f.result() for f in as_completed(futures)]

    updates: list[ProductUpdate] = []
    done: dict[int, BulkFailure | None] = {}
    for oid, op_result, failure in outcomes:
        done[oid] = failure
        if failure is None:
            updates.extend(op_result.updated_products)
    result.updated_products = merge_updates(updates)

    for oid in todo:
        if done[oid] is None:
            result.succeeded.append(oid)
        else:
            result.failed.append(done[oid])

    logger.info(
        "bulk %s: requested=%s succeeded=%s failed=%s skipped=%s",
        action.value, len(ids), len(result.succeeded), len(result.failed), len(result.skipped),
    )
    return result
