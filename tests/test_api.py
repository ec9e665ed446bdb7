# test_api.py

import pytest

from app.database import Stores
from app.errors import StoreError
from app.fulfillment import OrderFulfillment, StockLedger


@pytest.fixture
def shop(client):
    """ Seed one user and three items through the API. """
    client.post("/users", json={"username": "burak"})
    for name, price, stock in [("Laptop", 15000, 8), ("Mouse", 150, 50), ("Klavye", 400, 5)]:
        client.post("/items", json={"item_name": name, "price": price, "stock": stock})
    return client


def test_request_id_is_echoed(client):
    res = client.get("/items", headers={"Request-ID": "req-123"})
    assert res.status_code == 200
    assert res.headers["Request-ID"] == "req-123"


def test_request_id_is_generated(client):
    res = client.get("/items")
    assert res.headers["Request-ID"]


def test_create_and_read_item(client):
    res = client.post("/items", json={"item_name": "Laptop", "price": 15000, "stock": 8})
    assert res.status_code == 200
    item = res.json()
    assert item["id"] == 1
    assert item["created_at"]
    assert client.get("/items/1").json() == item


def test_create_item_rejects_negative_stock(client):
    res = client.post("/items", json={"item_name": "Laptop", "price": 15000, "stock": -1})
    assert res.status_code == 422


def test_read_missing_item_is_404(client):
    res = client.get("/items/5")
    assert res.status_code == 404
    assert res.json()["detail"]["error"] == "not_found"


def test_lists_and_count(shop):
    assert [user["username"] for user in shop.get("/users").json()] == ["burak"]
    assert len(shop.get("/items").json()) == 3
    assert shop.get("/items/count").json() == {"count": 3}
    assert shop.get("/items/count", params={"maxPrice": 400}).json() == {"count": 2}
    assert shop.get("/orders").json() == []


def test_filter_endpoint(shop):
    res = shop.get("/items/filter", params={"name": "TOP"})
    assert [item["item_name"] for item in res.json()] == ["Laptop"]
    res = shop.get("/items/filter", params={"minPrice": 150, "maxPrice": 400, "minStock": 10})
    assert [item["item_name"] for item in res.json()] == ["Mouse"]
    assert len(shop.get("/items/filter").json()) == 3


def test_patch_put_delete_item(shop):
    assert shop.patch("/items/1", json={"stock": 3}).status_code == 204
    assert shop.get("/items/1").json()["stock"] == 3

    res = shop.put("/items/2", json={"item_name": "Wireless Mouse", "price": 300, "stock": 10})
    assert res.status_code == 204
    assert shop.get("/items/2").json()["item_name"] == "Wireless Mouse"

    assert shop.delete("/items/3").status_code == 204
    assert shop.get("/items/3").status_code == 404
    assert shop.delete("/items/3").status_code == 404


def test_patch_items_by_filter(shop):
    res = shop.patch("/items", params={"maxPrice": 400}, json={"stock": 0})
    assert res.json() == {"count": 2}
    assert [item["stock"] for item in shop.get("/items").json()] == [8, 0, 0]


def test_post_order(shop):
    res = shop.post("/orders", json={"user_id": 1, "item_id": 1, "count": 2})
    assert res.status_code == 200
    assert res.json() == {
        "order": {"id": 1, "user_id": 1, "item_id": 1, "stock_number": 2},
        "user": {"id": 1, "username": "burak"},
        "item": {"id": 1, "item_name": "Laptop"},
    }
    assert shop.get("/items/1").json()["stock"] == 6
    assert len(shop.get("/orders").json()) == 1


def test_post_order_errors(shop):
    res = shop.post("/orders", json={"user_id": 1, "item_id": 1, "count": 9})
    assert res.status_code == 409
    assert res.json()["detail"]["error"] == "insufficient_stock"

    res = shop.post("/orders", json={"user_id": 2, "item_id": 1, "count": 1})
    assert res.status_code == 404
    assert res.json()["detail"]["message"] == "User with id 2 not found"

    res = shop.post("/orders", json={"user_id": 1, "item_id": 1, "count": 0})
    assert res.status_code == 422

    assert shop.get("/orders").json() == []
    assert shop.get("/items/1").json()["stock"] == 8


def test_post_cart(shop):
    res = shop.post("/cart", json={"user_id": 1, "items": [{"item_id": 2, "count": 1}, {"item_id": 3, "count": 4}]})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "2 orders created successfully"
    assert [entry["item"]["item_name"] for entry in body["orders"]] == ["Mouse", "Klavye"]
    assert shop.get("/items/3").json()["stock"] == 1


def test_post_cart_failure_keeps_earlier_lines(shop):
    res = shop.post("/cart", json={"user_id": 1, "items": [{"item_id": 2, "count": 1}, {"item_id": 3, "count": 6}]})
    assert res.status_code == 409
    assert res.json()["detail"]["message"] == "Insufficient stock for item Klavye. Available: 5, Requested: 6"
    assert len(shop.get("/orders").json()) == 1
    assert shop.get("/items/2").json()["stock"] == 49


def test_put_without_created_at_keeps_creation_time(client):
    created = client.post(
        "/items", json={"item_name": "Laptop", "price": 15000, "stock": 8, "created_at": "2024-01-01T00:00:00+00:00"}
    ).json()

    res = client.put(f"/items/{created['id']}", json={"item_name": "Laptop Pro", "price": 20000, "stock": 4})
    assert res.status_code == 204

    replaced = client.get(f"/items/{created['id']}").json()
    assert replaced["item_name"] == "Laptop Pro"
    assert replaced["created_at"] == created["created_at"]


def test_put_with_created_at_overwrites_it(client):
    created = client.post("/items", json={"item_name": "Laptop", "price": 15000, "stock": 8}).json()
    res = client.put(
        f"/items/{created['id']}",
        json={"item_name": "Laptop", "price": 15000, "stock": 8, "created_at": "2023-05-01T12:00:00+00:00"},
    )
    assert res.status_code == 204
    assert client.get(f"/items/{created['id']}").json()["created_at"].startswith("2023-05-01T12:00:00")


def test_put_missing_item_is_404(client):
    res = client.put("/items/9", json={"item_name": "Laptop", "price": 15000, "stock": 8})
    assert res.status_code == 404


def test_malformed_created_at_is_rejected(shop):
    res = shop.post("/items", json={"item_name": "Laptop", "price": 15000, "stock": 8, "created_at": "banana"})
    assert res.status_code == 422
    assert shop.patch("/items/1", json={"created_at": "banana"}).status_code == 422
    assert shop.put("/items/1", json={"item_name": "Laptop", "price": 1, "stock": 1, "created_at": "banana"}).status_code == 422
    assert shop.get("/items/count").json() == {"count": 3}


class BrokenItems:
    """ Item store whose reads always fail. """

    def find(self, where=None):
        raise StoreError("Failed to read items: disk I/O error")

    def find_by_id(self, record_id):
        raise StoreError("Failed to read items: disk I/O error")


class ContendedItems:
    """ Item store where another writer takes one unit between every read and write. """

    def __init__(self, inner):
        self.inner = inner

    def find_by_id(self, record_id):
        return self.inner.find_by_id(record_id)

    def update_by_id(self, record_id, fields, expected=None):
        current = self.inner.find_by_id(record_id)["stock"]
        self.inner.update_by_id(record_id, {"stock": current - 1})
        return self.inner.update_by_id(record_id, fields, expected=expected)


def test_store_failure_is_500_without_details(shop):
    stores = shop.app.state.stores
    shop.app.state.stores = Stores(items=BrokenItems(), users=stores.users, orders=stores.orders)

    res = shop.get("/items")
    assert res.status_code == 500
    assert res.json()["detail"] == {"error": "store_error", "message": "Internal Server Error"}
    assert "disk" not in res.text

    assert shop.get("/items/1").status_code == 500


def test_stock_conflict_is_409(shop):
    stores = shop.app.state.stores
    shop.app.state.fulfillment = OrderFulfillment(
        stores.items,
        stores.users,
        stores.orders,
        ledger=StockLedger(ContendedItems(stores.items), max_attempts=2),
    )

    res = shop.post("/orders", json={"user_id": 1, "item_id": 2, "count": 1})
    assert res.status_code == 409
    assert res.json()["detail"]["error"] == "stock_conflict"
    assert shop.get("/orders").json() == []
    # only the competing writer's two units left
    assert shop.get("/items/2").json()["stock"] == 48


def test_cart_response_is_validated(shop):
    res = shop.post("/cart", json={"user_id": 1, "items": [{"item_id": 1, "count": 1}]})
    assert res.status_code == 200
    assert res.json() == {
        "message": "1 orders created successfully",
        "orders": [{
            "order": {"id": 1, "user_id": 1, "item_id": 1, "stock_number": 1},
            "user": {"id": 1, "username": "burak"},
            "item": {"id": 1, "item_name": "Laptop"},
        }],
    }
