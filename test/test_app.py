"""
Public endpoints and error rendering.
"""
import config


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["message"] == config.APP_NAME


def test_health_reports_database_and_sweeper(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] in ("healthy", "degraded")
    assert body["checks"]["database"] == {"status": "ok"}
    assert body["checks"]["retention_sweeper"] == {"running": False}
    assert "disk" in body["checks"]


def test_health_without_database(client, monkeypatch):
    monkeypatch.setattr(config, "db", None)
    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["checks"]["database"]["status"] == "error"


def test_unknown_route_uses_message_shape(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert "message" in response.json()
