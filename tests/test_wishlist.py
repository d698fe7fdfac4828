def test_add_list_and_remove(client, user, make_product):
    shoe = make_product("Runner", 50)

    res = client.post("/api/wishlist/items", json={"product_id": shoe["id"]}, headers=user["headers"])
    assert res.status_code == 201
    assert res.json()["items"][0]["product"]["name"] == "Runner"
    assert client.get("/api/wishlist/count", headers=user["headers"]).json() == {"count": 1}

    res = client.delete(f"/api/wishlist/items/{shoe['id']}", headers=user["headers"])
    assert res.json()["items"] == []


def test_duplicate_product_rejected(client, user, make_product):
    shoe = make_product()
    client.post("/api/wishlist/items", json={"product_id": shoe["id"]}, headers=user["headers"])

    res = client.post("/api/wishlist/items", json={"product_id": shoe["id"]}, headers=user["headers"])

    assert res.status_code == 400
    assert res.json()["detail"] == "Product already in wishlist"


def test_unknown_product(client, user):
    res = client.post("/api/wishlist/items", json={"product_id": "64b000000000000000000000"}, headers=user["headers"])
    assert res.status_code == 404


def test_empty_wishlist_is_created_on_read(client, user):
    body = client.get("/api/wishlist/", headers=user["headers"]).json()
    assert body["items"] == []
    assert body["user_id"] == user["id"]


def test_clear(client, user, make_product):
    for name in ("A", "B"):
        client.post("/api/wishlist/items", json={"product_id": make_product(name)["id"]}, headers=user["headers"])

    assert client.delete("/api/wishlist/", headers=user["headers"]).status_code == 200
    assert client.get("/api/wishlist/count", headers=user["headers"]).json()["count"] == 0
