import os

os.environ["MONGO_URI"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "stride_store_test"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ.pop("SMTP_HOST", None)

import mongomock
import pymongo

# database.py builds its client at import time
pymongo.MongoClient = mongomock.MongoClient

import pytest
from fastapi.testclient import TestClient

import database
from main import app

COLLECTIONS = (
    database.user_collection,
    database.product_collection,
    database.category_collection,
    database.cart_collection,
    database.order_collection,
    database.coupon_collection,
    database.address_collection,
    database.review_collection,
    database.banner_collection,
    database.newsletter_collection,
    database.password_reset_collection,
    database.abandoned_cart_collection,
    database.wishlist_collection,
)

SHIPPING_ADDRESS = {
    "full_name": "Asha Rao",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
    "country": "India",
}


@pytest.fixture(scope="session", autouse=True)
def indexes():
    database.ensure_indexes()


@pytest.fixture(autouse=True)
def clean_db():
    for collection in COLLECTIONS:
        collection.delete_many({})
    yield


@pytest.fixture
def client():
    return TestClient(app)


def signup(client, email, name="Test User", password="secret123"):
    res = client.post("/auth/signup", json={"name": name, "email": email, "password": password})
    assert res.status_code == 201, res.text
    body = res.json()
    return {"Authorization": f"Bearer {body['token']['access_token']}"}, body["user"]


@pytest.fixture
def admin_headers(client):
    headers, _ = signup(client, "admin@example.com", "Store Admin")
    return headers


@pytest.fixture
def user(client):
    headers, info = signup(client, "shopper@example.com", "Shopper One")
    return {"headers": headers, **info}


@pytest.fixture
def other_user(client):
    headers, info = signup(client, "second@example.com", "Shopper Two")
    return {"headers": headers, **info}


@pytest.fixture
def make_product(client, admin_headers):
    def _make(name="Runner", price=50.0, **extra):
        payload = {
            "name": name,
            "price": price,
            "image": f"https://img.example.com/{name}.jpg",
            "category": "running",
            "description": f"{name} shoe",
            **extra,
        }
        res = client.post("/api/products/", json=payload, headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()
    return _make


@pytest.fixture
def place_order(client):
    def _place(headers, items):
        for product, qty in items:
            res = client.post(
                "/api/cart/items",
                json={"product_id": product["id"], "quantity": qty},
                headers=headers,
            )
            assert res.status_code == 201, res.text
        res = client.post(
            "/api/orders/",
            json={"shipping_address": SHIPPING_ADDRESS, "payment_method": "cash_on_delivery"},
            headers=headers,
        )
        assert res.status_code == 201, res.text
        return res.json()
    return _place


@pytest.fixture
def make_coupon(client, admin_headers):
    def _make(code="SAVE10", type="flat", value=10.0, **extra):
        payload = {
            "code": code,
            "name": f"{code} offer",
            "type": type,
            "value": value,
            "expiry_date": "2099-01-01T00:00:00Z",
            **extra,
        }
        if type == "percentage":
            payload.setdefault("max_discount_amount", 1000)
        res = client.post("/api/coupons/admin", json=payload, headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()["coupon"]
    return _make
