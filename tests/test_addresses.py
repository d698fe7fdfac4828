from datetime import datetime

from bson import ObjectId

import database

ADDRESS = {
    "full_name": "Asha Rao",
    "phone": "+919876543210",
    "address_line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
}


def create(client, headers, **extra):
    res = client.post("/api/addresses/", json={**ADDRESS, **extra}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["address"]


def defaults(user_id):
    return [a["_id"] for a in database.address_collection.find({"user_id": user_id, "is_default": True, "is_active": True})]


def test_first_address_becomes_default(client, user):
    address = create(client, user["headers"])

    assert address["is_default"] is True
    assert address["label"] == "Home"
    assert address["country"] == "India"
    assert "Bengaluru, Karnataka 560001" in address["formatted_address"]


def test_new_default_unsets_previous(client, user):
    first = create(client, user["headers"])
    second = create(client, user["headers"], type="office", is_default=True)

    assert second["is_default"] is True
    assert [str(i) for i in defaults(user["id"])] == [second["id"]]
    listed = client.get("/api/addresses/", headers=user["headers"]).json()["addresses"]
    assert {a["id"]: a["is_default"] for a in listed} == {first["id"]: False, second["id"]: True}


def test_non_default_address_leaves_default_alone(client, user):
    first = create(client, user["headers"])
    create(client, user["headers"], type="other")

    assert [str(i) for i in defaults(user["id"])] == [first["id"]]


def test_set_default_flips_siblings(client, user):
    create(client, user["headers"])
    second = create(client, user["headers"])

    res = client.patch(f"/api/addresses/{second['id']}/set-default", headers=user["headers"])

    assert res.status_code == 200
    assert [str(i) for i in defaults(user["id"])] == [second["id"]]
    assert client.get("/api/addresses/default", headers=user["headers"]).json()["id"] == second["id"]


def test_update_to_default_flips_siblings(client, user):
    create(client, user["headers"])
    second = create(client, user["headers"])

    res = client.put(f"/api/addresses/{second['id']}", json={"is_default": True, "city": "Mysuru"}, headers=user["headers"])

    assert res.status_code == 200
    assert res.json()["address"]["city"] == "Mysuru"
    assert [str(i) for i in defaults(user["id"])] == [second["id"]]


def test_only_address_cannot_be_deleted(client, user):
    only = create(client, user["headers"])

    res = client.delete(f"/api/addresses/{only['id']}", headers=user["headers"])

    assert res.status_code == 400
    assert res.json()["detail"].startswith("Cannot delete the only address")


def test_deleting_default_promotes_another(client, user):
    first = create(client, user["headers"])
    second = create(client, user["headers"])

    res = client.delete(f"/api/addresses/{first['id']}", headers=user["headers"])

    assert res.status_code == 200
    assert res.json()["new_default"]["id"] == second["id"]
    assert [str(i) for i in defaults(user["id"])] == [second["id"]]
    assert client.get(f"/api/addresses/{first['id']}", headers=user["headers"]).status_code == 404


def test_address_limit(client, user):
    for _ in range(10):
        create(client, user["headers"])

    res = client.post("/api/addresses/", json=ADDRESS, headers=user["headers"])

    assert res.status_code == 400
    assert res.json()["detail"].startswith("Maximum 10 addresses allowed")


def test_default_falls_back_to_newest(client, user):
    oldest = create(client, user["headers"])
    newest = create(client, user["headers"])
    database.address_collection.update_many({"user_id": user["id"]}, {"$set": {"is_default": False}})
    database.address_collection.update_one(
        {"_id": ObjectId(oldest["id"])}, {"$set": {"created_at": datetime(2020, 1, 1)}}
    )

    res = client.get("/api/addresses/default", headers=user["headers"])

    assert res.json()["id"] == newest["id"]


def test_addresses_are_private(client, user, other_user):
    address = create(client, user["headers"])
    assert client.get(f"/api/addresses/{address['id']}", headers=other_user["headers"]).status_code == 404


def test_validation(client, user):
    res = client.post("/api/addresses/", json={**ADDRESS, "postal_code": "12"}, headers=user["headers"])
    assert res.status_code == 422


def test_admin_views(client, user, admin_headers):
    address = create(client, user["headers"])

    stats = client.get("/api/addresses/admin/stats", headers=admin_headers).json()
    assert stats["active"] == 1
    assert stats["by_type"] == [{"type": "home", "count": 1}]

    by_user = client.get(f"/api/addresses/admin/user/{user['id']}", headers=admin_headers).json()
    assert [a["id"] for a in by_user["addresses"]] == [address["id"]]

    res = client.delete(f"/api/addresses/admin/{address['id']}/permanent", headers=admin_headers)
    assert res.status_code == 200
    assert database.address_collection.count_documents({}) == 0
