"""Tests for bearer tokens and the current-user dependency."""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.security import create_access_token, decode_access_token, user_id_from_token
from app.models.users import users


def test_token_carries_user_id():
    """Test the user id survives encoding."""
    token = create_access_token(42, role_hint="user")

    payload = decode_access_token(token)
    assert payload["sub"] == "42"
    assert payload["role_hint"] == "user"
    assert user_id_from_token(token) == 42


def test_expired_token_rejected():
    """Test an expired token decodes to nothing."""
    token = create_access_token(42, expires_delta=timedelta(seconds=-1))
    assert decode_access_token(token) is None
    assert user_id_from_token(token) is None


def test_wrong_token_type_rejected():
    """Test a validly signed token of another type is refused."""
    token = jwt.encode(
        {"sub": "42", "type": "refresh"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    assert decode_access_token(token) is None


def test_non_numeric_subject_rejected():
    """Test a subject that is not a user id is refused."""
    token = jwt.encode(
        {"sub": "abc", "type": "access"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    assert user_id_from_token(token) is None


@pytest.mark.asyncio
async def test_unknown_user(client: AsyncClient):
    """Test a token for a user that does not exist."""
    headers = {"Authorization": f"Bearer {create_access_token(999)}"}

    response = await client.get("/api/v1/appointments/", headers=headers)

    assert response.status_code == 401
    assert response.json()["message"] == "User not found"


@pytest.mark.asyncio
async def test_deactivated_user(
    client: AsyncClient,
    auth_headers: dict,
    test_user: dict,
    db_session: AsyncSession,
):
    """Test a deactivated account is refused."""
    await db_session.execute(
        update(users).where(users.c.id == test_user["id"]).values(is_active=False)
    )
    await db_session.commit()

    response = await client.get("/api/v1/appointments/", headers=auth_headers)

    assert response.status_code == 403
    assert response.json()["message"] == "User account is deactivated"


@pytest.mark.asyncio
async def test_invalid_token_challenges_bearer(client: AsyncClient):
    """Test a bad token is a 401 with a Bearer challenge and the standard error body."""
    headers = {"Authorization": "Bearer not-a-jwt"}

    response = await client.get("/api/v1/appointments/", headers=headers)

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    body = response.json()
    assert body["error"] == "UnauthorizedException"
    assert body["message"] == "Could not validate credentials"
    assert body["path"] == "/api/v1/appointments/"
