from decimal import Decimal

import pytest

from conftest import fresh, make_order, make_product
from stockpost.app.db.models.core_types import MovementDirection, MovementKind, POStatus
from stockpost.app.db.models.models_v1 import PurchaseOrder
from stockpost.services import ledger, lifecycle
from stockpost.services.errors import InsufficientStockForReversal


def test_reverse_restores_snapshot_when_nothing_happened_after(db_session):
    p = make_product(db_session, "SKU-1", stock=10, cost="5", price="8", markup="0.50")
    po = make_order(db_session, (p, 10, "7"))
    lifecycle.post_stock(db_session, po.id)
    assert fresh(db_session, p).price == Decimal("9.00")

    result = lifecycle.reverse_stock(db_session, po.id)

    assert result.status == POStatus.draft
    p = fresh(db_session, p)
    assert (p.stock, p.cost, p.price) == (10, Decimal("5.0000"), Decimal("8.00"))

    [update] = result.updated_products
    assert update.quantity_delta == -10
    assert update.updated_cost is True
    assert update.updated_price is True


def test_reverse_writes_compensating_entry(db_session):
    p = make_product(db_session, "SKU-C")
    po = make_order(db_session, (p, 4, "2.5"))
    lifecycle.post_stock(db_session, po.id)
    lifecycle.reverse_stock(db_session, po.id)

    post, rev = ledger.list_order_movements(db_session, po.id)
    assert post.kind == MovementKind.purchase_post
    assert rev.kind == MovementKind.purchase_reverse
    assert rev.direction == MovementDirection.outbound
    assert rev.reverses_movement_id == post.id
    assert rev.quantity_applied == -4
    assert rev.unit_cost_applied == post.unit_cost_applied
    assert (rev.product_stock_before, rev.product_stock_after) == (4, 0)
    assert ledger.active_order_postings(db_session, po.id) == []


def test_reverse_older_order_keeps_newer_contribution(db_session):
    p = make_product(db_session, "SKU-IL")
    a = make_order(db_session, (p, 10, "4"))
    b = make_order(db_session, (p, 10, "6"))
    lifecycle.post_stock(db_session, a.id)
    lifecycle.post_stock(db_session, b.id)
    assert fresh(db_session, p).cost == Decimal("5.0000")

    lifecycle.reverse_stock(db_session, a.id)

    p = fresh(db_session, p)
    assert p.stock == 10
    assert p.cost == Decimal("6.0000")

    lifecycle.reverse_stock(db_session, b.id)

    p = fresh(db_session, p)
    assert p.stock == 0
    assert p.cost == Decimal("0.0000")


def test_replay_recomputes_markup_price(db_session):
    p = make_product(db_session, "SKU-RP", markup="0.50")
    a = make_order(db_session, (p, 10, "4"))
    b = make_order(db_session, (p, 10, "6"))
    lifecycle.post_stock(db_session, a.id)
    lifecycle.post_stock(db_session, b.id)
    assert fresh(db_session, p).price == Decimal("7.50")

    lifecycle.reverse_stock(db_session, a.id)

    p = fresh(db_session, p)
    assert p.cost == Decimal("6.0000")
    assert p.price == Decimal("9.00")


def test_replay_keeps_sell_price_of_surviving_posting(db_session):
    p = make_product(db_session, "SKU-SV", price="1")
    a = make_order(db_session, (p, 2, "4", "5.00"))
    b = make_order(db_session, (p, 2, "6", "12.00"))
    lifecycle.post_stock(db_session, a.id)
    lifecycle.post_stock(db_session, b.id)

    lifecycle.reverse_stock(db_session, b.id)
    assert fresh(db_session, p).price == Decimal("5.00")

    lifecycle.post_stock(db_session, b.id)
    lifecycle.reverse_stock(db_session, a.id)

    p = fresh(db_session, p)
    assert p.stock == 2
    assert p.cost == Decimal("6.0000")
    assert p.price == Decimal("12.00")


def test_reverse_order_with_two_items_on_same_product(db_session):
    p = make_product(db_session, "SKU-2X", stock=0, cost="0", price="3")
    po = make_order(db_session, (p, 5, "2"), (p, 5, "4"))
    lifecycle.post_stock(db_session, po.id)
    assert fresh(db_session, p).cost == Decimal("3.0000")

    result = lifecycle.reverse_stock(db_session, po.id)

    p = fresh(db_session, p)
    assert (p.stock, p.cost, p.price) == (0, Decimal("0.0000"), Decimal("3.00"))
    assert result.updated_products[0].quantity_delta == -10


def test_reverse_refuses_to_drive_stock_negative(db_session):
    p = make_product(db_session, "SKU-NEG")
    po = make_order(db_session, (p, 10, "3"))
    lifecycle.post_stock(db_session, po.id)

    # six units sold in the meantime
    p = fresh(db_session, p)
    p.stock = 4
    db_session.commit()

    with pytest.raises(InsufficientStockForReversal) as exc:
        lifecycle.reverse_stock(db_session, po.id)
    assert (exc.value.stock, exc.value.quantity) == (4, 10)

    assert fresh(db_session, p).stock == 4
    po = db_session.get(PurchaseOrder, po.id, populate_existing=True)
    assert po.status == POStatus.stock_posted
    assert len(ledger.list_order_movements(db_session, po.id)) == 1


def test_repost_after_reverse_is_counted_once(db_session):
    p = make_product(db_session, "SKU-RE")
    po = make_order(db_session, (p, 3, "2"))

    lifecycle.post_stock(db_session, po.id)
    lifecycle.reverse_stock(db_session, po.id)
    lifecycle.post_stock(db_session, po.id)

    p = fresh(db_session, p)
    assert p.stock == 3
    assert p.cost == Decimal("2.0000")
    assert len(ledger.active_order_postings(db_session, po.id)) == 1
    assert len(ledger.list_order_movements(db_session, po.id)) == 3
