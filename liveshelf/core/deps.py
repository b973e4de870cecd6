"""FastAPI dependencies for identity resolution."""

from typing import Annotated

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from liveshelf.core.db import get_db_session
from liveshelf.core.logging import get_logger
from liveshelf.core.security import ACCESS_TOKEN_TYPE, verify_token
from liveshelf.core.settings import get_settings
from liveshelf.models.user import User

logger = get_logger(__name__)

# Bearer header is optional: browsers authenticate with the session cookie instead
optional_security = HTTPBearer(auto_error=False)

AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in."


class AuthenticationRequired(Exception):
    """Raised when an endpoint needs a signed-in user and none is present."""

    def __init__(self, message: str = AUTH_REQUIRED_MESSAGE):
        super().__init__(message)
        self.message = message


def _user_id_from_request(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> int | None:
    if credentials is not None:
        try:
            payload = verify_token(credentials.credentials, expected_type=ACCESS_TOKEN_TYPE)
            return int(payload["sub"])
        except (jwt.InvalidTokenError, KeyError, ValueError):
            logger.debug("Rejected bearer token on %s", request.url.path)
            return None
    # Populated by the session middleware from the access cookie
    return getattr(request.state, "session_user_id", None)


def get_optional_user(
    request: Request,
    db: Annotated[Session, Depends(get_db_session)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_security)],
) -> User | None:
    """
    Get the signed-in user for this request, or None.

    Args:
        request: Incoming request (carries the cookie-derived user id)
        db: Database session
        credentials: Optional HTTP Bearer credentials

    Returns:
        Active user if authenticated, None otherwise
    """
    user_id = _user_id_from_request(request, credentials)
    if user_id is None:
        return None
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User:
    """
    Require a signed-in user.

    Raises:
        AuthenticationRequired: when the request carries no valid session
    """
    if user is None:
        raise AuthenticationRequired()
    return user


def get_submitting_user(
    user: Annotated[User | None, Depends(get_optional_user)],
) -> User | None:
    """Resolve the submitter for /api/add according to ``require_auth_for_add``."""
    if user is None and get_settings().require_auth_for_add:
        raise AuthenticationRequired()
    return user
