import threading
import time
from decimal import Decimal

from conftest import fresh, make_order, make_product
from stockpost.app.core.config import Settings
from stockpost.app.db.models.core_types import BulkAction, POStatus
from stockpost.app.db.models.models_v1 import PurchaseOrder
from stockpost.services import bulk, lifecycle
from stockpost.services.errors import ConcurrencyConflict
from stockpost.services.summary import ProductUpdate

SETTINGS = Settings(database_url="sqlite://", bulk_max_workers=1, conflict_retries=2)


def _run(action, ids, session_factory, settings=SETTINGS):
    return bulk.run_bulk(action, ids, session_factory=session_factory, settings=settings, max_workers=1)


def test_bulk_reverse_isolates_failing_order(db_session, session_factory):
    products = [make_product(db_session, f"SKU-{i}") for i in range(3)]
    orders = [make_order(db_session, (p, 5, "2")) for p in products]
    for po in orders:
        lifecycle.post_stock(db_session, po.id)

    # the middle product sold most of its stock
    middle = fresh(db_session, products[1])
    middle.stock = 2
    db_session.commit()

    result = _run(BulkAction.reverse, [po.id for po in orders], session_factory)

    assert result.succeeded == [orders[0].id, orders[2].id]
    [failure] = result.failed
    assert failure.order_id == orders[1].id
    assert failure.code == "INSUFFICIENT_STOCK_FOR_REVERSAL"
    assert result.skipped == []

    assert [fresh(db_session, p).stock for p in products] == [0, 2, 0]
    statuses = [db_session.get(PurchaseOrder, po.id, populate_existing=True).status for po in orders]
    assert statuses == [POStatus.draft, POStatus.stock_posted, POStatus.draft]

    assert {u.product_id for u in result.updated_products} == {products[0].id, products[2].id}


def test_bulk_post_skips_ineligible_and_reports_missing(db_session, session_factory):
    p = make_product(db_session, "SKU-M")
    posted = make_order(db_session, (p, 1, "1"))
    draft = make_order(db_session, (p, 2, "1"))
    lifecycle.post_stock(db_session, posted.id)

    result = _run("post", [posted.id, draft.id, 999_999], session_factory)

    assert result.succeeded == [draft.id]
    assert [(s.order_id, s.status) for s in result.skipped] == [(posted.id, "STOCK_POSTED")]
    assert [(f.order_id, f.code) for f in result.failed] == [(999_999, "ORDER_NOT_FOUND")]
    assert fresh(db_session, p).stock == 3


def test_bulk_merges_updates_per_product(db_session, session_factory):
    p = make_product(db_session, "SKU-MERGE")
    a = make_order(db_session, (p, 2, "1"))
    b = make_order(db_session, (p, 3, "2"))

    result = _run(BulkAction.post, [a.id, b.id, a.id], session_factory)

    assert result.succeeded == [a.id, b.id]
    [update] = result.updated_products
    assert update.quantity_delta == 5
    assert update.new_stock == 5
    assert update.cost == Decimal("1.6000")


def test_bulk_delete_accepts_any_status(db_session, session_factory):
    p = make_product(db_session, "SKU-BD")
    posted = make_order(db_session, (p, 4, "1"))
    draft = make_order(db_session, (p, 1, "1"))
    lifecycle.post_stock(db_session, posted.id)

    result = _run(BulkAction.delete, [posted.id, draft.id], session_factory)

    assert result.succeeded == [posted.id, draft.id]
    assert fresh(db_session, p).stock == 0
    assert db_session.get(PurchaseOrder, draft.id, populate_existing=True) is None


def test_eligible_order_ids(db_session):
    p = make_product(db_session, "SKU-E")
    posted = make_order(db_session, (p, 1, "1"))
    draft = make_order(db_session, (p, 1, "1"))
    lifecycle.post_stock(db_session, posted.id)

    ids = [draft.id, posted.id, 12345]
    assert bulk.eligible_order_ids(db_session, BulkAction.post, ids) == [draft.id]
    assert bulk.eligible_order_ids(db_session, BulkAction.reverse, ids) == [posted.id]
    assert bulk.eligible_order_ids(db_session, BulkAction.delete, ids) == [draft.id, posted.id]


def test_bulk_retries_concurrency_conflicts(db_session, session_factory, monkeypatch):
    p = make_product(db_session, "SKU-RETRY")
    po = make_order(db_session, (p, 1, "1"))

    real_post = lifecycle.post_stock
    calls = []

    def flaky_post(db, order_id):
        calls.append(order_id)
        if len(calls) == 1:
            raise ConcurrencyConflict(order_id)
        return real_post(db, order_id)

    monkeypatch.setattr(lifecycle, "post_stock", flaky_post)

    result = _run(BulkAction.post, [po.id], session_factory)

    assert result.succeeded == [po.id]
    assert calls == [po.id, po.id]


def test_bulk_gives_up_after_retries(db_session, session_factory, monkeypatch):
    p = make_product(db_session, "SKU-GIVEUP")
    po = make_order(db_session, (p, 1, "1"))

    def always_conflict(db, order_id):
        raise ConcurrencyConflict(order_id)

    monkeypatch.setattr(lifecycle, "post_stock", always_conflict)

    result = _run(BulkAction.post, [po.id], session_factory, settings=Settings(conflict_retries=1))

    assert result.succeeded == []
    assert [(f.order_id, f.code) for f in result.failed] == [(po.id, "CONCURRENCY_CONFLICT")]


def test_bulk_summary_keeps_values_of_last_finished_order(db_session, session_factory, monkeypatch):
    p = make_product(db_session, "SKU-ORDERING")
    slow = make_order(db_session, (p, 1, "1"))
    quick = make_order(db_session, (p, 1, "1"))
    quick_done = threading.Event()

    def fake_post(db, order_id):
        if order_id == slow.id:
            assert quick_done.wait(timeout=5)
            time.sleep(0.2)
            stock = 2
        else:
            stock = 1
        update = ProductUpdate(p.id, p.name, stock, 1, True, Decimal(stock), False, Decimal("0"))
        if order_id == quick.id:
            quick_done.set()
        return lifecycle.OperationResult(order_id=order_id, status=POStatus.stock_posted, updated_products=[update])

    monkeypatch.setattr(lifecycle, "post_stock", fake_post)

    result = bulk.run_bulk(
        BulkAction.post,
        [slow.id, quick.id],
        session_factory=session_factory,
        settings=SETTINGS,
        max_workers=2,
    )

    # input order for the id lists, finishing order for the product values
    assert result.succeeded == [slow.id, quick.id]
    [update] = result.updated_products
    assert update.new_stock == 2
    assert update.quantity_delta == 2
