"""
Tests for the session HTTP API.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from session_relay.exceptions import StoreUnavailableError
from session_relay.tests.conftest import FakeClock


def _parse_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class TestCreateSession:
    def test_create_returns_id_and_expiry(self, client: TestClient):
        # Execute
        response = client.post("/sessions", json={"combatState": {"round": 1}, "expiresInMinutes": 60})

        # Verify
        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Session created successfully"
        assert isinstance(body["sessionId"], str) and body["sessionId"]
        remaining = (_parse_iso(body["expiresAt"]) - datetime.now(UTC)).total_seconds()
        assert 3500 < remaining <= 3600
        assert body["expiresAt"].endswith("Z")

    def test_create_accepts_state_key(self, client: TestClient):
        created = client.post("/sessions", json={"state": {"round": 7}}).json()

        fetched = client.get(f"/sessions/{created['sessionId']}").json()

        assert fetched["state"] == {"round": 7}
        assert fetched["combatState"] == {"round": 7}

    def test_default_lifetime_is_eight_hours(self, client: TestClient):
        body = client.post("/sessions", json={"combatState": {}}).json()

        remaining = (_parse_iso(body["expiresAt"]) - datetime.now(UTC)).total_seconds()
        assert 8 * 3600 - 100 < remaining <= 8 * 3600

    def test_negative_lifetime_is_bad_request(self, client: TestClient):
        response = client.post("/sessions", json={"combatState": {}, "expiresInMinutes": -5})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_malformed_body_is_bad_request(self, client: TestClient):
        response = client.post("/sessions", content="{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_store_failure_is_generic_500(self, client: TestClient, session_store):
        """Test storage errors never leak internal detail."""
        session_store.put = AsyncMock(side_effect=StoreUnavailableError("redis://secret-host refused"))

        response = client.post("/sessions", json={"combatState": {}})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to create session"
        assert "secret-host" not in response.text


class TestGetSession:
    def test_get_returns_full_snapshot(self, client: TestClient):
        created = client.post("/sessions", json={"combatState": {"currentTurn": 2}}).json()

        response = client.get(f"/sessions/{created['sessionId']}")

        assert response.status_code == 200
        body = response.json()
        assert body["sessionId"] == created["sessionId"]
        assert body["combatState"] == {"currentTurn": 2}
        assert body["createdAt"] == body["updatedAt"]
        assert body["expiresAt"] == created["expiresAt"]

    def test_get_unknown_is_404(self, client: TestClient):
        response = client.get("/sessions/doesnotexist")

        assert response.status_code == 404
        assert response.json()["error"] == "Session not found"

    def test_get_expired_is_404_expired(self, client: TestClient, fake_clock: FakeClock):
        created = client.post("/sessions", json={"combatState": {}, "expiresInMinutes": 1}).json()
        # The in-memory store filters expiry against its own clock
        fake_clock.now = int(_parse_iso(created["expiresAt"]).timestamp() * 1000)

        response = client.get(f"/sessions/{created['sessionId']}")

        assert response.status_code == 404
        assert response.json()["error"] == "Session expired"

    def test_store_failure_is_generic_500(self, client: TestClient, session_store):
        session_store.get = AsyncMock(side_effect=StoreUnavailableError("boom"))

        response = client.get("/sessions/abc")

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to get session"


class TestUpdateSession:
    def test_update_replaces_state(self, client: TestClient):
        created = client.post("/sessions", json={"combatState": {"round": 1}}).json()

        response = client.put(f"/sessions/{created['sessionId']}", json={"combatState": {"round": 2}})

        assert response.status_code == 200
        assert response.json()["message"] == "Session updated successfully"
        assert isinstance(response.json()["updatedAt"], int)
        assert client.get(f"/sessions/{created['sessionId']}").json()["combatState"] == {"round": 2}

    def test_update_extends_expiry(self, client: TestClient):
        created = client.post("/sessions", json={"combatState": {}, "expiresInMinutes": 5}).json()

        client.put(f"/sessions/{created['sessionId']}", json={"combatState": {}, "extendTtlMinutes": 120})

        fetched = client.get(f"/sessions/{created['sessionId']}").json()
        assert _parse_iso(fetched["expiresAt"]) > _parse_iso(created["expiresAt"])

    def test_update_unknown_is_404(self, client: TestClient, session_store):
        response = client.put("/sessions/ghost", json={"combatState": {"round": 1}})

        assert response.status_code == 404
        assert response.json()["error"] == "Session not found"
        assert len(session_store) == 0

    def test_negative_extension_is_bad_request(self, client: TestClient):
        created = client.post("/sessions", json={"combatState": {}}).json()

        response = client.put(f"/sessions/{created['sessionId']}", json={"combatState": {}, "extendTtlMinutes": -1})

        assert response.status_code == 400

    def test_store_failure_is_generic_500(self, client: TestClient, session_store):
        created = client.post("/sessions", json={"combatState": {}}).json()
        session_store.update = AsyncMock(side_effect=StoreUnavailableError("boom"))

        response = client.put(f"/sessions/{created['sessionId']}", json={"combatState": {}})

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to update session"


class TestDeleteSession:
    def test_delete_then_get_is_404(self, client: TestClient):
        created = client.post("/sessions", json={"combatState": {}}).json()

        response = client.delete(f"/sessions/{created['sessionId']}")

        assert response.status_code == 200
        assert response.json() == {"message": "Session deleted successfully"}
        assert client.get(f"/sessions/{created['sessionId']}").status_code == 404

    def test_delete_is_idempotent(self, client: TestClient):
        first = client.delete("/sessions/never-there")
        second = client.delete("/sessions/never-there")

        assert first.status_code == second.status_code == 200

    def test_store_failure_is_generic_500(self, client: TestClient, session_store):
        session_store.delete = AsyncMock(side_effect=StoreUnavailableError("boom"))

        response = client.delete("/sessions/abc")

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to delete session"


class TestCrossCutting:
    def test_preflight_returns_cors_headers(self, client: TestClient):
        # Execute
        response = client.options(
            "/sessions",
            headers={"Origin": "https://host.example", "Access-Control-Request-Method": "POST"},
        )

        # Verify
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET,POST,PUT,DELETE,OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type,Authorization"

    def test_preflight_without_origin_still_ok(self, client: TestClient):
        response = client.options("/sessions/abc")

        assert response.status_code == 200

    def test_regular_responses_carry_cors_headers(self, client: TestClient):
        response = client.get("/sessions/missing")

        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_route_is_404_not_found(self, client: TestClient):
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json()["error"] == "Not found"

    def test_correlation_id_is_echoed(self, client: TestClient):
        response = client.get("/health", headers={"X-Correlation-ID": "trace-123"})

        assert response.headers["x-correlation-id"] == "trace-123"

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "storage_backend": "memory", "active_connections": 0}
