import database


def add(client, headers, product, **extra):
    return client.post("/api/cart/items", json={"product_id": product["id"], **extra}, headers=headers)


def test_same_line_accumulates(client, user, make_product):
    shoe = make_product("Runner", 50)

    add(client, user["headers"], shoe, quantity=1, size="9")
    cart = add(client, user["headers"], shoe, quantity=2, size="9").json()

    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 3
    assert cart["total"] == 150
    assert cart["item_count"] == 3


def test_different_size_is_a_new_line(client, user, make_product):
    shoe = make_product()

    add(client, user["headers"], shoe, size="9")
    cart = add(client, user["headers"], shoe, size="10").json()

    assert len(cart["items"]) == 2


def test_update_and_remove_items(client, user, make_product):
    cart = add(client, user["headers"], make_product("Runner", 40)).json()
    item_id = cart["items"][0]["item_id"]

    res = client.put(f"/api/cart/items/{item_id}", json={"quantity": 4}, headers=user["headers"])
    assert res.json()["total"] == 160

    assert client.put(f"/api/cart/items/{item_id}", json={"quantity": 0}, headers=user["headers"]).status_code == 422
    assert client.put("/api/cart/items/missing", json={"quantity": 2}, headers=user["headers"]).status_code == 404

    res = client.delete(f"/api/cart/items/{item_id}", headers=user["headers"])
    assert res.json()["items"] == []
    assert res.json()["total"] == 0


def test_unknown_product(client, user):
    res = client.post("/api/cart/items", json={"product_id": "64b000000000000000000000"}, headers=user["headers"])
    assert res.status_code == 404


def test_total_follows_current_price(client, user, admin_headers, make_product):
    shoe = make_product("Runner", 50)
    add(client, user["headers"], shoe, quantity=2)

    client.put(f"/api/products/{shoe['id']}", json={"price": 30}, headers=admin_headers)

    assert client.get("/api/cart/", headers=user["headers"]).json()["total"] == 60


def test_clear_cart(client, user, make_product):
    add(client, user["headers"], make_product())

    res = client.delete("/api/cart/", headers=user["headers"])

    assert res.status_code == 200
    assert res.json()["cart"]["items"] == []


def test_guest_cart_merges_into_user_cart(client, user, make_product):
    shoe = make_product("Runner", 50)
    sock = make_product("Sock", 5)
    client.post("/api/cart/guest/abc123/items", json={"product_id": shoe["id"], "quantity": 1})
    client.post("/api/cart/guest/abc123/items", json={"product_id": sock["id"], "quantity": 3})
    add(client, user["headers"], shoe, quantity=2)

    guest = client.get("/api/cart/guest/abc123").json()
    assert guest["total"] == 65

    merged = client.post("/api/cart/merge", json={"session_id": "abc123"}, headers=user["headers"]).json()

    quantities = {i["product_id"]: i["quantity"] for i in merged["items"]}
    assert quantities == {shoe["id"]: 3, sock["id"]: 3}
    assert merged["total"] == 165
    assert database.cart_collection.count_documents({"session_id": "abc123"}) == 0


def test_clear_guest_cart(client, make_product):
    client.post("/api/cart/guest/xyz/items", json={"product_id": make_product()["id"]})

    assert client.delete("/api/cart/guest/xyz").status_code == 200
    assert client.get("/api/cart/guest/xyz").json()["items"] == []
