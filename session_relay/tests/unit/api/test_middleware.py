"""
Tests for the correlation and CORS middleware.
"""

import pytest
from fastapi.testclient import TestClient

from session_relay.middleware.correlation_middleware import session_id_from_path


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/sessions/abc123", "abc123"),
        ("/sessions/abc123/", "abc123"),
        ("/sessions", None),
        ("/health", None),
        ("/sessions/abc/extra", None),
    ],
)
def test_session_id_from_path(path, expected):
    assert session_id_from_path(path) == expected


class TestCorrelationHeader:
    def test_generated_when_absent(self, client: TestClient):
        first = client.get("/health").headers["x-correlation-id"]
        second = client.get("/health").headers["x-correlation-id"]

        assert first and second
        assert first != second

    def test_present_on_error_responses(self, client: TestClient):
        response = client.get("/sessions/missing", headers={"X-Correlation-ID": "abc"})

        assert response.status_code == 404
        assert response.headers["x-correlation-id"] == "abc"


class TestCors:
    def test_preflight_on_unknown_path(self, client: TestClient):
        response = client.options("/anything/at/all")

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_error_responses_carry_cors_headers(self, client: TestClient):
        response = client.post("/sessions", json={"combatState": {}, "expiresInMinutes": 0})

        assert response.status_code == 400
        assert response.headers["access-control-allow-methods"] == "GET,POST,PUT,DELETE,OPTIONS"
