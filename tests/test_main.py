"""
Tests for the application shell: root, health, metrics and error envelopes.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.config import settings
from app.db.session import get_db


def override_db(app, session: AsyncMock) -> None:
    async def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db


class TestRoot:
    def test_root_banner(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Digital Life Lessons Server is running"
        assert response.json()["version"] == settings.api_version


class TestHealth:
    """Tests for GET /health."""

    def test_healthy(self, app, client, db_session):
        override_db(app, db_session)

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        db_session.execute.assert_awaited_once()

    def test_database_down(self, app, client, db_session):
        db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("refused"))
        )
        override_db(app, db_session)

        response = client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert body["database"] == "disconnected"


class TestMetricsEndpoint:
    def test_exposes_prometheus_text(self, client):
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "lessons_http_requests_total" in response.text

    def test_disabled(self, client):
        with patch.object(settings, "metrics_enabled", False):
            response = client.get("/metrics")

        assert response.status_code == 404
        assert response.json() == {"error": "Metrics disabled"}


class TestErrorEnvelopes:
    def test_unknown_route(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert "error" in response.json()

    def test_malformed_body(self, client, auth_headers):
        response = client.post(
            "/api/payment/verify-payment",
            content=b"{not json",
            headers={**auth_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Invalid request body"

    def test_unhandled_exception_is_generic(self, app, client, store, account):
        store.find_by_id = AsyncMock(side_effect=RuntimeError("secret internals"))
        quiet_client = TestClient(app, raise_server_exceptions=False)

        response = quiet_client.get(f"/api/users/{account.account_id}")

        assert response.status_code == 500
        assert response.json() == {"error": "Something went wrong!"}
        assert "secret internals" not in response.text
