"""Session cookie refresh.

The access/refresh cookie pair is issued by the auth provider. On each request
``refresh_session`` inspects the incoming cookies and decides what the outgoing
cookies should be; it never touches request or response objects directly, only
the ``CookieStore`` it is handed.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import jwt
from starlette.responses import Response

from liveshelf.core.logging import get_logger
from liveshelf.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    verify_token,
)
from liveshelf.core.settings import get_settings

logger = get_logger(__name__)

ACCESS_COOKIE = "ls_access"
REFRESH_COOKIE = "ls_refresh"


class CookieStore(Protocol):
    """Read/write/clear access to one request's cookies."""

    def read(self, name: str) -> str | None: ...

    def write(self, name: str, value: str, max_age: int) -> None: ...

    def clear(self, name: str) -> None: ...


@dataclass(frozen=True)
class SessionRefresh:
    """What ``refresh_session`` decided for one request."""

    user_id: int | None
    refreshed: bool = False
    cleared: bool = False


@dataclass
class PendingCookieStore:
    """CookieStore over an incoming cookie mapping that records outgoing changes.

    Reads observe writes made earlier in the same request.
    """

    incoming: Mapping[str, str]
    writes: dict[str, tuple[str, int]] = field(default_factory=dict)
    clears: set[str] = field(default_factory=set)

    def read(self, name: str) -> str | None:
        if name in self.writes:
            return self.writes[name][0]
        if name in self.clears:
            return None
        return self.incoming.get(name)

    def write(self, name: str, value: str, max_age: int) -> None:
        self.clears.discard(name)
        self.writes[name] = (value, max_age)

    def clear(self, name: str) -> None:
        self.writes.pop(name, None)
        self.clears.add(name)

    def apply(self, response: Response, *, secure: bool) -> None:
        """Copy recorded changes onto an outgoing response."""
        for name, (value, max_age) in self.writes.items():
            response.set_cookie(
                name,
                value,
                max_age=max_age,
                httponly=True,
                secure=secure,
                samesite="lax",
            )
        for name in self.clears:
            response.delete_cookie(name)


def _user_id_from(token: str, token_type: str, now: datetime | None) -> int | None:
    try:
        payload = verify_token(token, expected_type=token_type, now=now)
        return int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def refresh_session(cookies: CookieStore, now: datetime | None = None) -> SessionRefresh:
    """
    Keep the session cookies consistent for one request.

    - valid access cookie: nothing changes
    - missing/expired access cookie with a valid refresh cookie: a new access
      token is written
    - invalid refresh cookie: both cookies are cleared

    Args:
        cookies: Cookie store for the request
        now: Timezone-aware evaluation time (defaults to the wall clock)

    Returns:
        SessionRefresh with the resolved user id, if any
    """
    access_token = cookies.read(ACCESS_COOKIE)
    if access_token:
        user_id = _user_id_from(access_token, ACCESS_TOKEN_TYPE, now)
        if user_id is not None:
            return SessionRefresh(user_id=user_id)

    refresh_token = cookies.read(REFRESH_COOKIE)
    if not refresh_token:
        if access_token:
            cookies.clear(ACCESS_COOKIE)
            return SessionRefresh(user_id=None, cleared=True)
        return SessionRefresh(user_id=None)

    user_id = _user_id_from(refresh_token, REFRESH_TOKEN_TYPE, now)
    if user_id is None:
        logger.info("Clearing session cookies after invalid refresh token")
        cookies.clear(ACCESS_COOKIE)
        cookies.clear(REFRESH_COOKIE)
        return SessionRefresh(user_id=None, cleared=True)

    settings = get_settings()
    cookies.write(
        ACCESS_COOKIE,
        create_access_token(user_id, now=now),
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    logger.debug("Refreshed access cookie for user %s", user_id)
    return SessionRefresh(user_id=user_id, refreshed=True)
