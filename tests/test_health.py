# tests/test_health.py
from http import HTTPStatus


def test_health_endpoint_ok(client):
    """
    /health responds with 200 and the expected JSON shape.
    """
    response = client.get("/health")

    assert response.status_code == HTTPStatus.OK
    data = response.json()

    assert data["status"] == "ok"
    assert data["app_name"] == "Session Attendance Engine"
    assert data["environment"] == "test"
    assert "timestamp_utc" in data


def test_health_does_not_require_admin_key(client):
    response = client.get("/health", headers={"X-Admin-Api-Key": "irrelevant"})

    assert response.status_code == HTTPStatus.OK
