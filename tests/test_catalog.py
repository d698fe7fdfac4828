def create_category(client, headers, **body):
    res = client.post("/api/categories/", json=body, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["category"]


def test_product_filters(client, make_product):
    make_product("Road Runner", 50)
    make_product("Trail Blazer", 120, category="trail")
    make_product("Court Classic", 80, in_stock=False)

    def names(**params):
        body = client.get("/api/products/", params={"sort": "price_asc", **params}).json()
        return [p["name"] for p in body["products"]]

    assert names() == ["Road Runner", "Court Classic", "Trail Blazer"]
    assert names(category="trail") == ["Trail Blazer"]
    assert names(in_stock=True) == ["Road Runner", "Trail Blazer"]
    assert names(min_price=60, max_price=100) == ["Court Classic"]
    assert names(q="runner") == ["Road Runner"]
    assert names(sort="price_desc")[0] == "Trail Blazer"


def test_product_pagination(client, make_product):
    for i in range(3):
        make_product(f"Shoe {i}", 10 + i)

    body = client.get("/api/products/", params={"limit": 2, "page": 2, "sort": "price_asc"}).json()

    assert [p["name"] for p in body["products"]] == ["Shoe 2"]
    assert body["pagination"] == {
        "current_page": 2, "total_pages": 2, "total": 3, "has_next": False, "has_prev": True,
    }


def test_product_admin_only(client, user):
    res = client.post(
        "/api/products/",
        json={"name": "X", "price": 1, "image": "x", "category": "c", "description": "d"},
        headers=user["headers"],
    )
    assert res.status_code == 403
    assert res.json()["detail"] == "Admin access required"


def test_deleting_product_drops_wishlist_entries(client, user, admin_headers, make_product):
    shoe = make_product()
    client.post("/api/wishlist/items", json={"product_id": shoe["id"]}, headers=user["headers"])

    assert client.delete(f"/api/products/{shoe['id']}", headers=admin_headers).status_code == 200

    assert client.get(f"/api/products/{shoe['id']}").status_code == 404
    assert client.get("/api/wishlist/count", headers=user["headers"]).json()["count"] == 0


def test_category_slug_generated(client, admin_headers):
    category = create_category(client, admin_headers, name="Trail Running Shoes")
    assert category["slug"] == "trail-running-shoes"

    res = client.post("/api/categories/", json={"name": "Trail Running Shoes"}, headers=admin_headers)
    assert res.status_code == 400


def test_category_with_products_cannot_be_deleted(client, admin_headers, make_product):
    category = create_category(client, admin_headers, name="Running")
    make_product("Runner", category="running")

    res = client.delete(f"/api/categories/{category['id']}", headers=admin_headers)

    assert res.status_code == 400
    assert "1 products" in res.json()["detail"]


def test_category_with_children_cannot_be_deleted(client, admin_headers):
    parent = create_category(client, admin_headers, name="Men")
    create_category(client, admin_headers, name="Men Running", parent_category=parent["id"])

    assert client.delete(f"/api/categories/{parent['id']}", headers=admin_headers).status_code == 400


def test_category_tree(client, admin_headers):
    parent = create_category(client, admin_headers, name="Women", sort_order=1)
    create_category(client, admin_headers, name="Women Trail", parent_category=parent["id"])
    create_category(client, admin_headers, name="Kids", sort_order=2)

    tree = client.get("/api/categories/tree").json()["categories"]

    assert [c["name"] for c in tree] == ["Women", "Kids"]
    assert [c["name"] for c in tree[0]["subcategories"]] == ["Women Trail"]


def test_renaming_category_moves_products(client, admin_headers, make_product):
    category = create_category(client, admin_headers, name="Running")
    make_product("Runner", category="running")

    client.put(f"/api/categories/{category['id']}", json={"name": "Road Running"}, headers=admin_headers)

    products = client.get("/api/products/", params={"category": "road-running"}).json()["products"]
    assert [p["name"] for p in products] == ["Runner"]


def test_category_stats(client, admin_headers, make_product):
    create_category(client, admin_headers, name="Running")
    make_product("A", 40)
    make_product("B", 60, in_stock=False)

    stats = client.get("/api/categories/admin/stats", headers=admin_headers).json()

    detail = stats["category_details"][0]
    assert detail["product_count"] == 2
    assert detail["in_stock_products"] == 1
    assert detail["avg_price"] == 50
