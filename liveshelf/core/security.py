"""Token helpers for the session issued by the auth provider."""

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from liveshelf.core.settings import get_settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def create_token(
    user_id: int, token_type: str, expires_delta: timedelta, now: datetime | None = None
) -> str:
    """
    Create a signed JWT.

    Args:
        user_id: User ID to encode in token
        token_type: Type of token ('access' or 'refresh')
        expires_delta: Time until token expires
        now: Issue time (defaults to the current UTC time)

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    issued_at = now or datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "exp": issued_at + expires_delta,
        "iat": issued_at,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: int, now: datetime | None = None) -> str:
    """Create an access token with the configured expiry."""
    settings = get_settings()
    expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_token(user_id, ACCESS_TOKEN_TYPE, expires_delta, now=now)


def create_refresh_token(user_id: int, now: datetime | None = None) -> str:
    """Create a refresh token with the configured expiry."""
    settings = get_settings()
    expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return create_token(user_id, REFRESH_TOKEN_TYPE, expires_delta, now=now)


def verify_token(
    token: str, expected_type: str | None = None, now: datetime | None = None
) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string
        expected_type: When given, the token's ``type`` claim must match
        now: Evaluate expiry against this instant instead of the wall clock

    Returns:
        Decoded token payload

    Raises:
        jwt.ExpiredSignatureError: If token is expired
        jwt.InvalidTokenError: If token is invalid or of the wrong type
    """
    settings = get_settings()
    options = {"verify_exp": False} if now is not None else None
    payload = jwt.decode(
        token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM], options=options
    )
    if now is not None and payload.get("exp", 0) <= now.timestamp():
        raise jwt.ExpiredSignatureError("Signature has expired")
    if expected_type is not None and payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token")
    return payload
