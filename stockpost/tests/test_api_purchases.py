from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from stockpost.app.api.deps import get_db, get_session_factory
from stockpost.app.main import app


@pytest.fixture(scope="function")
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def _product(client, sku, **extra):
    r = client.post("/v1/products", json={"sku": sku, "name": f"Product {sku}", **extra})
    assert r.status_code == 201, r.text
    return r.json()


def _purchase(client, *items, **extra):
    r = client.post("/v1/purchases", json={"items": list(items), **extra})
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    assert client.get("/v1/health").json() == {"ok": True, "service": "stockpost"}
    assert client.get("/v1/db-ping").json()["select1"] == 1


def test_post_and_reverse_roundtrip(client):
    p = _product(client, "API-1", stock=10, cost="5", price="8")
    po = _purchase(client, {"product_id": p["id"], "quantity": 10, "unit_cost": "7"})
    assert po["status"] == "DRAFT"
    assert po["number"] == "PC-000001"

    r = client.post(f"/v1/purchases/{po['id']}/post-stock")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "STOCK_POSTED"
    [update] = body["updatedProducts"]
    assert update["productId"] == p["id"]
    assert update["newStock"] == 20
    assert update["quantityDelta"] == 10
    assert Decimal(update["cost"]) == Decimal("6")

    r = client.post(f"/v1/purchases/{po['id']}/reverse-stock")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "DRAFT"

    product = client.get(f"/v1/products/{p['id']}").json()
    assert product["stock"] == 10
    assert Decimal(product["cost"]) == Decimal("5")

    movements = client.get(f"/v1/purchases/{po['id']}/movements").json()
    assert [m["kind"] for m in movements] == ["PURCHASE_POST", "PURCHASE_REVERSE"]
    assert movements[1]["reverses_movement_id"] == movements[0]["id"]

    by_product = client.get("/v1/stock-movements", params={"product_id": p["id"]}).json()
    assert [m["quantity_applied"] for m in by_product] == [10, -10]


def test_errors_map_to_status_codes(client):
    p = _product(client, "API-ERR")
    po = _purchase(client, {"product_id": p["id"], "quantity": 1})
    client.post(f"/v1/purchases/{po['id']}/post-stock")

    r = client.post(f"/v1/purchases/{po['id']}/post-stock")
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_TRANSITION"
    assert r.json()["retryable"] is False

    r = client.post("/v1/purchases/99999/post-stock")
    assert r.status_code == 404
    assert r.json()["code"] == "ORDER_NOT_FOUND"

    r = client.post("/v1/purchases", json={"items": [{"product_id": 99999, "quantity": 1}]})
    assert r.status_code == 422

    r = client.post("/v1/purchases", json={"items": [{"product_id": p["id"], "quantity": 0}]})
    assert r.status_code == 422


def test_bulk_endpoints(client):
    p = _product(client, "API-BULK")
    a = _purchase(client, {"product_id": p["id"], "quantity": 2, "unit_cost": "1"})
    b = _purchase(client, {"product_id": p["id"], "quantity": 3, "unit_cost": "1"})
    client.post(f"/v1/purchases/{a['id']}/post-stock")

    r = client.post("/v1/purchases/bulk/post/eligible", json={"ids": [a["id"], b["id"]]})
    assert r.json()["ids"] == [b["id"]]

    r = client.post("/v1/purchases/bulk/post", json={"ids": [a["id"], b["id"], 4242]})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["succeeded"] == [b["id"]]
    assert body["skipped"] == [{"orderId": a["id"], "status": "STOCK_POSTED"}]
    assert [f["code"] for f in body["failed"]] == ["ORDER_NOT_FOUND"]
    assert body["updatedProducts"][0]["newStock"] == 5

    r = client.post("/v1/purchases/bulk/delete", json={"ids": [a["id"], b["id"]]})
    assert r.json()["succeeded"] == [a["id"], b["id"]]
    assert client.get(f"/v1/products/{p['id']}").json()["stock"] == 0
    assert client.get(f"/v1/purchases/{a['id']}").status_code == 404


def test_edit_and_finalize(client):
    p = _product(client, "API-ED", cost="2")
    supplier = client.post("/v1/suppliers", json={"name": "Island Imports"}).json()
    po = _purchase(client, {"product_id": p["id"], "quantity": 1}, supplier_id=supplier["id"], notes="first")
    assert po["supplier_id"] == supplier["id"]

    r = client.put(f"/v1/purchases/{po['id']}/items", json={"items": [{"product_id": p["id"], "quantity": 4}]})
    assert r.status_code == 200, r.text
    assert Decimal(r.json()["total_value"]) == Decimal("8")

    r = client.post(f"/v1/purchases/{po['id']}/finalize")
    assert r.json()["status"] == "FINALIZED"

    r = client.put(f"/v1/purchases/{po['id']}/items", json={"items": [{"product_id": p["id"], "quantity": 1}]})
    assert r.status_code == 409

    listed = client.get("/v1/purchases", params={"status": "FINALIZED"}).json()
    assert [row["id"] for row in listed] == [po["id"]]
