"""Health endpoint tests."""

def test_health_returns_ok(client):
    """GET /health returns status ok and the live viewer count."""
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["viewers"] >= 0
