import pytest


def submit(client, headers, product, rating=5, comment="Great fit, very comfy."):
    return client.post(
        "/api/reviews/",
        json={"product_id": product["id"], "rating": rating, "comment": comment},
        headers=headers,
    )


def moderate(client, admin_headers, review, status):
    res = client.put(f"/api/reviews/admin/{review['id']}/status", json={"status": status}, headers=admin_headers)
    assert res.status_code == 200, res.text
    return res.json()["review"]


@pytest.fixture
def shoe(make_product):
    return make_product()


def test_new_review_is_pending(client, user, shoe):
    res = submit(client, user["headers"], shoe)

    assert res.status_code == 201
    review = res.json()["review"]
    assert review["status"] == "pending"
    assert review["verified"] is False
    assert client.get(f"/api/reviews/product/{shoe['id']}").json()["reviews"] == []


def test_purchase_marks_review_verified(client, user, shoe, place_order):
    place_order(user["headers"], [(shoe, 1)])
    assert submit(client, user["headers"], shoe).json()["review"]["verified"] is True


def test_one_review_per_product(client, user, shoe):
    submit(client, user["headers"], shoe)
    res = submit(client, user["headers"], shoe, rating=1)

    assert res.status_code == 400
    assert res.json()["detail"] == "You have already reviewed this product"


def test_short_comment_rejected(client, user, shoe):
    assert submit(client, user["headers"], shoe, comment="meh").status_code == 422


def test_approval_updates_product_rating(client, user, other_user, admin_headers, shoe):
    first = submit(client, user["headers"], shoe, rating=5).json()["review"]
    second = submit(client, other_user["headers"], shoe, rating=2).json()["review"]

    moderate(client, admin_headers, first, "approved")
    moderate(client, admin_headers, second, "approved")

    product = client.get(f"/api/products/{shoe['id']}").json()
    assert product["rating"] == 3.5
    assert product["reviews_count"] == 2

    listing = client.get(f"/api/reviews/product/{shoe['id']}").json()
    assert listing["total_reviews"] == 2
    assert listing["rating_distribution"]["5"] == 1
    assert "user_email" not in listing["reviews"][0]

    moderate(client, admin_headers, second, "rejected")
    assert client.get(f"/api/products/{shoe['id']}").json()["rating"] == 5


def test_deleting_approved_review_recomputes(client, user, admin_headers, shoe):
    review = submit(client, user["headers"], shoe).json()["review"]
    moderate(client, admin_headers, review, "approved")

    client.delete(f"/api/reviews/admin/{review['id']}", headers=admin_headers)

    product = client.get(f"/api/products/{shoe['id']}").json()
    assert product["reviews_count"] == 0


def test_admin_edit_keeps_history(client, user, admin_headers, shoe):
    review = submit(client, user["headers"], shoe, rating=4).json()["review"]

    res = client.put(
        f"/api/reviews/admin/{review['id']}/edit",
        json={"rating": 3, "reason": "Removed profanity"},
        headers=admin_headers,
    )

    edited = res.json()["review"]
    assert edited["rating"] == 3
    assert edited["edit_history"][0]["previous_rating"] == 4
    assert edited["edit_history"][0]["reason"] == "Removed profanity"


def test_helpful_only_for_approved(client, user, admin_headers, shoe):
    review = submit(client, user["headers"], shoe).json()["review"]

    assert client.post(f"/api/reviews/{review['id']}/helpful").status_code == 400

    moderate(client, admin_headers, review, "approved")
    client.post(f"/api/reviews/{review['id']}/helpful")
    res = client.post(f"/api/reviews/{review['id']}/helpful")

    assert res.json()["helpful"] == 2


def test_review_stats(client, user, other_user, admin_headers, shoe):
    review = submit(client, user["headers"], shoe, rating=4).json()["review"]
    submit(client, other_user["headers"], shoe, rating=2)
    moderate(client, admin_headers, review, "approved")

    stats = client.get("/api/reviews/admin/stats", headers=admin_headers).json()

    assert stats == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "average_rating": 4.0}
    assert len(client.get("/api/reviews/my-reviews", headers=user["headers"]).json()["reviews"]) == 1
