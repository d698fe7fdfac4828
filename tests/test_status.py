def test_root(client):
    assert "online" in client.get("/").json()["status"]


def test_health_reports_database(client):
    body = client.get("/health/").json()

    assert body["status"] == "OK"
    assert body["database"] == "Connected"
    assert "frontend" not in body
