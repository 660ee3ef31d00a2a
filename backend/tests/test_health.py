from __future__ import annotations


def test_health_reports_status_and_environment(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "OK"
    assert body["environment"] == "test"
    assert body["uptime"] >= 0
    assert body["timestamp"]


def test_root_and_request_id_header(client):
    response = client.get("/", headers={"X-Request-ID": "req-123"})

    assert response.json()["message"] == "StaffClock API running"
    assert response.headers["X-Request-ID"] == "req-123"


def test_unknown_route_uses_the_error_envelope(client):
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Route not found"}


def test_validation_errors_carry_details_outside_production(client, seeded):
    response = client.post("/auth/quick-login", json={})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert "pin" in body["details"]
