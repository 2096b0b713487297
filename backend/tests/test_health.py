"""
Health check tests for the API.
"""
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.db.session import get_db
from app.main import app


def test_health_check(client: TestClient):
    """Test health check endpoint."""
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readiness_check(client: TestClient):
    """Database up, Redis disabled: ready."""
    response = client.get("/v1/ready", headers={"X-Request-ID": "ready-check-1"})
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["checks"]["db"]["status"] == "ok"
    assert data["checks"]["redis"] == {"status": "ok", "message": "Not enabled"}
    assert data["checks"]["email"]["message"] == "console"
    assert data["request_id"] == "ready-check-1"


def test_readiness_reports_database_down(client: TestClient):
    broken = MagicMock()
    broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

    def broken_db():
        yield broken

    app.dependency_overrides[get_db] = broken_db
    response = client.get("/v1/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "down"
    assert data["checks"]["db"] == {"status": "down", "message": "Database unavailable"}


def test_request_id_is_echoed_or_generated(client: TestClient):
    echoed = client.get("/v1/health", headers={"X-Request-ID": "abc-123"})
    generated = client.get("/v1/health")

    assert echoed.headers["X-Request-ID"] == "abc-123"
    assert generated.headers["X-Request-ID"]
    assert generated.headers["X-Request-ID"] != "abc-123"


def test_security_headers(client: TestClient):
    response = client.get("/v1/health")

    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert response.headers["Cache-Control"] == "no-store"
    assert "Strict-Transport-Security" not in response.headers


def test_cors_preflight(client: TestClient):
    response = client.options(
        "/v1/signup-with-otp",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


def test_unknown_route_uses_error_envelope(client: TestClient):
    response = client.get("/v1/does-not-exist")

    assert response.status_code == 404
    data = response.json()
    assert data["code"]
    assert data["error"]
    assert "request_id" in data
