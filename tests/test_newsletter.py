"""Tests for newsletter endpoints."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
class TestNewsletter:
    """Tests for newsletter subscriptions."""

    async def test_subscribe(self, client: AsyncClient):
        """Test subscribing stores the address lower-cased."""
        response = await client.post(
            "/api/v1/newsletter/subscribe", json={"email": "Reader@Example.com"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["email"] == "reader@example.com"

        response = await client.get(
            "/api/v1/newsletter/status", params={"email": "READER@example.com"}
        )
        assert response.json() == {"email": "reader@example.com", "is_subscribed": True}

    async def test_subscribe_twice_conflicts(self, client: AsyncClient):
        """Test an active address cannot subscribe again."""
        await client.post("/api/v1/newsletter/subscribe", json={"email": "reader@example.com"})

        response = await client.post(
            "/api/v1/newsletter/subscribe", json={"email": "READER@example.com"}
        )

        assert response.status_code == 409
        assert response.json()["message"] == "Email is already subscribed"

    async def test_unsubscribe_and_resubscribe(self, client: AsyncClient):
        """Test an unsubscribed address can come back."""
        await client.post("/api/v1/newsletter/subscribe", json={"email": "reader@example.com"})

        response = await client.post(
            "/api/v1/newsletter/unsubscribe", json={"email": "reader@example.com"}
        )
        assert response.status_code == 200
        status = await client.get(
            "/api/v1/newsletter/status", params={"email": "reader@example.com"}
        )
        assert status.json()["is_subscribed"] is False

        response = await client.post(
            "/api/v1/newsletter/subscribe", json={"email": "reader@example.com"}
        )
        assert response.status_code == 200
        status = await client.get(
            "/api/v1/newsletter/status", params={"email": "reader@example.com"}
        )
        assert status.json()["is_subscribed"] is True

    async def test_unsubscribe_unknown(self, client: AsyncClient):
        """Test unsubscribing an address that never subscribed."""
        response = await client.post(
            "/api/v1/newsletter/unsubscribe", json={"email": "nobody@example.com"}
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Email is not subscribed"

    async def test_invalid_email(self, client: AsyncClient):
        """Test malformed addresses are rejected."""
        response = await client.post("/api/v1/newsletter/subscribe", json={"email": "not-email"})
        assert response.status_code == 422
