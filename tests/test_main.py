"""Tests for the Flask app."""

import pytest

from main import app


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


class TestFlaskApp:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_api_info_lists_endpoints(self, client):
        body = client.get("/api").get_json()
        assert body["status"] == "ok"
        assert body["endpoints"]["transition"] == "/groups/transition [POST]"

    def test_parcel_commission(self, client):
        response = client.post("/commission/parcel", json={"parcel": {"id": 1, "finalPrice": 1200}})
        assert response.status_code == 200
        assert response.get_json()["agent_share"] == 240.0

    def test_empty_body(self, client):
        response = client.post("/commission/group", data="", content_type="application/json")
        assert response.status_code == 400

    def test_validation_error(self, client):
        response = client.post("/earnings", json={"agentId": 1, "sort": "random"})
        assert response.status_code == 400
        assert response.get_json()["status"] == "validation_failed"

    def test_invalid_transition_is_conflict(self, client):
        response = client.post("/groups/transition", json={
            "group": {"id": 1, "status": "PICKUP_IN_PROGRESS", "targetMembers": 5, "currentMembers": 5,
                      "pickupAgentId": 10},
            "event": "assign_delivery_agent",
            "agentId": 20,
        })
        assert response.status_code == 409
        body = response.get_json()
        assert body["status"] == "invalid_transition"
        assert body["event"] == "assign_delivery_agent"

    def test_cors_header(self, client):
        response = client.get("/health", headers={"Origin": "https://dashboard.example.com"})
        assert response.headers.get("Access-Control-Allow-Origin") in ("*", "https://dashboard.example.com")
