from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from stockpost.app.db.session import SessionLocal
from stockpost.app.db.models.models_v1 import Product, Supplier

DEMO_PRODUCTS = [
    # sku, name, price, markup
    ("DEMO-001", "Demo product (fixed price)", Decimal("10.00"), None),
    ("DEMO-002", "Demo product (30% markup)", Decimal("0.00"), Decimal("0.30")),
]


def run_seed():
    db = SessionLocal()
    try:
        supplier = db.scalar(select(Supplier).where(Supplier.name == "Demo Supplier"))
        if not supplier:
            db.add(Supplier(name="Demo Supplier"))
            db.commit()

        for sku, name, price, markup in DEMO_PRODUCTS:
            if db.scalar(select(Product).where(Product.sku == sku)):
                continue
            db.add(Product(sku=sku, name=name, stock=0, cost=Decimal("0"), price=price, markup_percent=markup))
        db.commit()

        print(f"SEED OK: supplier=Demo Supplier, products={len(DEMO_PRODUCTS)}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
