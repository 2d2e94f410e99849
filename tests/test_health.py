"""Tests for health endpoints and the error response shape."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
class TestHealth:
    """Tests for health endpoints."""

    async def test_health(self, client: AsyncClient):
        """Test the basic health check."""
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_detailed_health(self, client: AsyncClient):
        """Test the detailed health check reports provider configuration."""
        response = await client.get("/api/v1/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["database"] == "healthy"
        assert data["providers"] == {"stripe": True, "mpesa": True, "resend": True}

    async def test_ping(self, client: AsyncClient):
        """Test the liveness probe."""
        response = await client.get("/api/v1/ping")

        assert response.status_code == 200
        assert response.json() == {"message": "pong"}
        assert "X-Request-ID" in response.headers

    async def test_error_shape(self, client: AsyncClient):
        """Test errors carry the error name, message and request path."""
        response = await client.get("/api/v1/appointments/1")

        assert response.status_code in (401, 403)
        body = response.json()
        assert set(body) >= {"error", "message", "path"}
        assert body["path"] == "/api/v1/appointments/1"
