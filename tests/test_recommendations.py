from datetime import timedelta

from bson import ObjectId

import database
from conftest import SHIPPING_ADDRESS
from utils import utcnow


def order_lines(client, headers, lines):
    """Checks out a cart of (product, size, color) lines."""
    for product, size, color in lines:
        res = client.post(
            "/api/cart/items",
            json={"product_id": product["id"], "size": size, "color": color},
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


def confirm(client, admin_headers, order):
    res = client.put(f"/api/orders/{order['id']}/status", json={"order_status": "confirmed"}, headers=admin_headers)
    assert res.status_code == 200


def rate(product, rating):
    database.product_collection.update_one({"_id": ObjectId(product["id"])}, {"$set": {"rating": rating}})


def names(body):
    return [p["name"] for p in body["recommended_products"]]


def test_default_recommendations(client):
    body = client.get("/api/recommendations/default").json()
    assert body["recommended_sizes"] == ["8", "9", "10"]
    assert body["recommended_colors"] == ["Black", "White", "Navy", "Brown", "Gray"]


def test_user_without_orders_gets_defaults(client, user):
    res = client.get("/api/recommendations/user", headers=user["headers"])

    assert res.status_code == 200
    assert res.json()["recommended_sizes"] == ["8", "9", "10"]
    assert "no previous orders" in res.json()["message"]
    assert client.get("/api/recommendations/user").status_code == 401


def test_user_sizes_and_colors_by_frequency(client, user, make_product):
    runner, trail = make_product("Runner"), make_product("Trail")
    order_lines(client, user["headers"], [(runner, "9", "Black"), (trail, "10", "White")])
    order_lines(client, user["headers"], [(runner, "9", "Black")])

    body = client.get("/api/recommendations/user", headers=user["headers"]).json()

    assert body["recommended_sizes"] == ["9", "10"]
    assert body["recommended_colors"] == ["Black", "White"]
    assert body["message"].startswith("Recommendations based on your 2 orders")


def test_orders_older_than_thirty_days_are_ignored(client, user, make_product):
    order = order_lines(client, user["headers"], [(make_product(), "12", "Red")])
    database.order_collection.update_one(
        {"_id": ObjectId(order["id"])}, {"$set": {"created_at": utcnow() - timedelta(days=40)}}
    )

    body = client.get("/api/recommendations/user", headers=user["headers"]).json()

    assert body["recommended_sizes"] == ["8", "9", "10"]


def test_guest_recommendations_from_cart(client, make_product):
    shoe = make_product()
    empty = client.post("/api/recommendations/guest", json={"session_id": "guest-1"}).json()
    assert empty == {"recommended_sizes": [], "recommended_colors": [], "message": "No items in cart"}

    for size, color in (("7", "Navy"), ("7", "Gray"), ("8", "Navy")):
        client.post("/api/cart/guest/guest-1/items", json={"product_id": shoe["id"], "size": size, "color": color})

    body = client.post("/api/recommendations/guest", json={"session_id": "guest-1"}).json()
    assert body["recommended_sizes"] == ["7", "8"]
    assert body["recommended_colors"] == ["Navy", "Gray"]
    assert client.post("/api/recommendations/guest", json={"session_id": ""}).status_code == 422


def test_enhanced_picks_source_by_caller(client, user, make_product):
    order_lines(client, user["headers"], [(make_product(), "11", "Brown")])

    signed_in = client.get("/api/recommendations/enhanced", headers=user["headers"]).json()
    anonymous = client.get("/api/recommendations/enhanced").json()

    assert signed_in["recommended_sizes"] == ["11"]
    assert anonymous["message"] == "Popular sizes and colors"


def test_trending_ranks_ordered_then_rated(client, user, make_product):
    rated = make_product("Rated")
    rate(rated, 4.6)
    low = make_product("Low")
    rate(low, 2)
    sold_out = make_product("Sold Out", in_stock=False)
    rate(sold_out, 5)
    popular = make_product("Popular")
    order_lines(client, user["headers"], [(popular, "9", "Black")])

    body = client.get("/api/recommendations/trending").json()

    assert names(body) == ["Popular", "Rated"]
    assert body["recommended_products"][0]["order_count"] == 1
    assert body["recommendation_type"] == "trending"


def test_trending_when_nothing_qualifies(client, make_product):
    make_product("Plain")

    body = client.get("/api/recommendations/trending").json()

    assert body["recommended_products"] == []
    assert body["recommendation_type"] == "no-trending"


def test_purchase_based_suggests_same_category(client, user, admin_headers, make_product):
    bought = make_product("Bought", category="running")
    sibling = make_product("Sibling", category="running")
    rate(sibling, 3)
    make_product("Other Aisle", category="trail")
    make_product("Gone", category="running", in_stock=False)

    pending = client.get("/api/recommendations/purchase-based", headers=user["headers"]).json()
    assert pending["recommendation_type"] != "purchase-based"

    confirm(client, admin_headers, order_lines(client, user["headers"], [(bought, "9", "Black")]))
    body = client.get("/api/recommendations/purchase-based", headers=user["headers"]).json()

    assert body["recommendation_type"] == "purchase-based"
    assert names(body) == ["Sibling"]
    assert body["message"] == "Based on your 1 previous purchases"


def test_products_endpoint_uses_guest_cart(client, make_product):
    in_cart = make_product("In Cart", category="trail")
    make_product("Trail Mate", category="trail")
    client.post("/api/cart/guest/guest-9/items", json={"product_id": in_cart["id"]})

    guest = client.get("/api/recommendations/products", params={"session_id": "guest-9"}).json()
    anonymous = client.get("/api/recommendations/products").json()

    assert guest["recommendation_type"] == "cart-based"
    assert names(guest) == ["Trail Mate"]
    assert anonymous["recommendation_type"] == "no-trending"


def test_category_popular_sizes(client, user, admin_headers, make_product):
    client.post("/api/categories/", json={"name": "Trail Running"}, headers=admin_headers)
    trail = make_product("Ridge", category="trail-running")
    road = make_product("Road", category="running")
    order_lines(client, user["headers"], [(trail, "11", "Red"), (road, "8", "Blue")])

    by_slug = client.get("/api/recommendations/category/trail-running").json()
    by_name = client.get("/api/recommendations/category/trail").json()
    unknown = client.get("/api/recommendations/category/hiking").json()

    assert by_slug["popular_sizes"] == ["11"]
    assert by_slug["popular_colors"] == ["Red"]
    assert by_name["popular_sizes"] == ["11"]
    assert unknown["popular_sizes"] == [] and unknown["popular_colors"] == []


def test_product_size_history(client, user, other_user, admin_headers, make_product):
    shoe = make_product()
    confirm(client, admin_headers, order_lines(client, user["headers"], [(shoe, "9", "Black")]))
    confirm(client, admin_headers, order_lines(client, other_user["headers"], [(shoe, "9", "White")]))
    confirm(client, admin_headers, order_lines(client, other_user["headers"], [(shoe, "10", "White")]))
    order_lines(client, user["headers"], [(shoe, "12", "Black")])

    body = client.get(f"/api/recommendations/product/{shoe['id']}/sizes").json()

    assert body["recommended_sizes"] == ["9", "10"]
    assert body["size_frequency"] == {"9": 2, "10": 1}
    assert body["total_purchases"] == 3
    assert body["unique_customers"] == 2
    assert client.get("/api/recommendations/product/not-an-id/sizes").status_code == 400
