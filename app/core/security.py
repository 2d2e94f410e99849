"""Bearer tokens for signed-in users.

Sign-in itself happens at the external OAuth provider; this API only issues
and verifies the short-lived token that carries the internal user id.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from app.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    user_id: int,
    expires_delta: timedelta | None = None,
    **claims: Any,
) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Internal user id, stored as the ``sub`` claim
        expires_delta: Token lifetime, defaults to the configured one
        **claims: Extra claims to embed

    Returns:
        Encoded JWT
    """
    issued_at = datetime.now(UTC)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    payload = {
        **claims,
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify a token's signature, expiry and type; None if any check fails."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    return payload


def user_id_from_token(token: str) -> int | None:
    """Extract the user id from a valid access token."""
    payload = decode_access_token(token)
    if payload is None:
        return None

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
