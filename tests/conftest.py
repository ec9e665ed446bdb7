# conftest.py

import os

# every TestClient lifespan gets its own throwaway database
os.environ.setdefault("ECOMMERCE_DATABASE_FILE", ":memory:")

import pytest
from fastapi.testclient import TestClient

from app.database import create_connection, create_tables, open_stores
from app.main import app


@pytest.fixture
def conn():
    conn = create_connection(":memory:")
    create_tables(conn)
    yield conn
    conn.close()


@pytest.fixture
def stores(conn):
    return open_stores(conn)


@pytest.fixture
def seeded(stores):
    """ One user and three items, mirroring a small shop catalogue. """
    stores.users.create({"username": "burak"})
    for name, price, stock in [("Laptop", 15000, 8), ("Mouse", 150, 50), ("Klavye", 400, 5)]:
        stores.items.create({"item_name": name, "price": price, "stock": stock, "created_at": "2024-01-01T00:00:00+00:00"})
    return stores


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client
