import os

# must be set before stockpost.app.db.session builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REVERSAL_STATUS"] = "DRAFT"
# SQLite serializes writers; keep bulk runs on one worker
os.environ["BULK_MAX_WORKERS"] = "1"

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from stockpost.app.db.base import Base
from stockpost.app.db.models.models_v1 import Product, Supplier
from stockpost.services import procurement
from stockpost.services.procurement import ItemInput


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """
    Fresh SQLite file per test.

    Services commit, so nothing is rolled back at the end; the file is simply
    dropped with tmp_path. Several sessions may share it (bulk, races).
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stockpost.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_product(db, sku, *, stock=0, cost="0", price="0", markup=None) -> Product:
    p = Product(
        sku=sku,
        name=f"Product {sku}",
        stock=stock,
        cost=Decimal(cost),
        price=Decimal(price),
        markup_percent=Decimal(markup) if markup is not None else None,
    )
    db.add(p)
    db.commit()
    return p


def make_supplier(db, name="ACME Wholesale") -> Supplier:
    s = Supplier(name=name)
    db.add(s)
    db.commit()
    return s


def make_order(db, *lines, supplier_id=None):
    """``lines`` are (product, quantity, unit_cost[, sell_price]) tuples."""
    items = []
    for line in lines:
        product, qty, unit_cost = line[:3]
        sell_price = line[3] if len(line) > 3 else None
        items.append(
            ItemInput(
                product_id=product.id,
                quantity=qty,
                unit_cost=Decimal(unit_cost),
                sell_price=Decimal(sell_price) if sell_price is not None else None,
            )
        )
    return procurement.create_order(db, items=items, supplier_id=supplier_id)


def fresh(db, product: Product) -> Product:
    return db.get(Product, product.id, populate_existing=True)
