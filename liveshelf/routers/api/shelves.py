"""Listing, search and shelf endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from liveshelf.core.db import get_db_session
from liveshelf.core.deps import get_current_user
from liveshelf.core.timing import timed
from liveshelf.models.metadata import TimeFilter
from liveshelf.models.user import User, UserResponse
from liveshelf.repositories.broadcast_repository import (
    get_broadcaster_shelf,
    get_tag_shelf,
    get_user_shelf,
    list_recent_broadcasts,
    search_broadcasters,
    search_broadcasts,
)
from liveshelf.routers.api.responses import error_response
from liveshelf.schemas.broadcasts import (
    BroadcasterSearchResponse,
    BroadcasterShelfResponse,
    BroadcastListResponse,
    TagShelfResponse,
    UserShelfResponse,
)
from liveshelf.utils.broadcast_utils import normalize_tag, normalize_username

router = APIRouter()

TimeQuery = Annotated[TimeFilter, Query(alias="time", description="all, 24h or 7d")]


@router.get(
    "/broadcasts",
    response_model=BroadcastListResponse,
    summary="List recent broadcasts",
    description=(
        "Newest broadcasts first (published_at, then first_seen_at) with their notes. "
        "Optionally filtered by a username substring and a time window."
    ),
)
def list_broadcasts(
    db: Annotated[Session, Depends(get_db_session)],
    time_filter: TimeQuery = TimeFilter.ALL,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    username: str | None = Query(None, description="Username substring"),
) -> BroadcastListResponse:
    with timed("list_recent_broadcasts"):
        broadcasts, total = list_recent_broadcasts(
            db, limit=limit, offset=offset, username=username, time_filter=time_filter
        )
    return BroadcastListResponse(broadcasts=broadcasts, count=total)


@router.get(
    "/search",
    response_model=BroadcastListResponse,
    summary="Search broadcasts and notes",
)
def search(
    db: Annotated[Session, Depends(get_db_session)],
    q: str = Query("", description="Search text"),
    time_filter: TimeQuery = TimeFilter.ALL,
    limit: int = Query(30, ge=1, le=100),
) -> BroadcastListResponse:
    """Match usernames, preview text, note text and tags."""
    with timed("search_broadcasts"):
        broadcasts = search_broadcasts(db, q, time_filter=time_filter, limit=limit)
    return BroadcastListResponse(broadcasts=broadcasts, count=len(broadcasts))


@router.get(
    "/search/broadcasters",
    response_model=BroadcasterSearchResponse,
    summary="Search broadcasters by username",
)
def search_broadcaster_names(
    db: Annotated[Session, Depends(get_db_session)],
    q: str = Query("", description="Username substring"),
    limit: int = Query(20, ge=1, le=100),
) -> BroadcasterSearchResponse:
    broadcasters = search_broadcasters(db, q, limit=limit)
    return BroadcasterSearchResponse(broadcasters=broadcasters, count=len(broadcasters))


@router.get(
    "/tags/{tag}",
    response_model=TagShelfResponse,
    summary="Broadcasts noted with a tag",
    responses={400: {"description": "Invalid tag"}},
)
def tag_shelf(
    tag: str,
    db: Annotated[Session, Depends(get_db_session)],
    time_filter: TimeQuery = TimeFilter.ALL,
    limit: int = Query(30, ge=1, le=100),
):
    normalized = normalize_tag(tag)
    if normalized is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid tag")

    with timed(f"get_tag_shelf {normalized}"):
        shelf = get_tag_shelf(db, normalized, time_filter=time_filter, limit=limit)
    return TagShelfResponse(
        tag=normalized,
        broadcasts=shelf.broadcasts,
        count=shelf.count,
        note_count=shelf.note_count,
    )


@router.get(
    "/broadcasters/{username}",
    response_model=BroadcasterShelfResponse,
    summary="A broadcaster's shelf",
    responses={400: {"description": "Invalid username"}},
)
def broadcaster_shelf(
    username: str,
    db: Annotated[Session, Depends(get_db_session)],
    time_filter: TimeQuery = TimeFilter.ALL,
    limit: int = Query(30, ge=1, le=100),
):
    normalized = normalize_username(username)
    if normalized is None:
        return error_response(status.HTTP_400_BAD_REQUEST, "Invalid username")

    with timed(f"get_broadcaster_shelf {normalized}"):
        shelf = get_broadcaster_shelf(db, normalized, time_filter=time_filter, limit=limit)
    return BroadcasterShelfResponse(
        x_username=normalized,
        broadcasts=shelf.broadcasts,
        count=shelf.count,
        latest_at=shelf.latest_at,
    )


@router.get(
    "/me/shelf",
    response_model=UserShelfResponse,
    summary="The signed-in user's shelf",
    responses={401: {"description": "Authentication required"}},
)
def my_shelf(
    db: Annotated[Session, Depends(get_db_session)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserShelfResponse:
    """Broadcasts the user added, and broadcasts they contributed notes to."""
    with timed("get_user_shelf"):
        shelf = get_user_shelf(db, current_user.id)
    return UserShelfResponse(
        added_broadcasts=shelf.added,
        contributed_broadcasts=shelf.contributed,
    )


@router.get(
    "/me",
    response_model=UserResponse,
    summary="The signed-in user",
    responses={401: {"description": "Authentication required"}},
)
def me(current_user: Annotated[User, Depends(get_current_user)]) -> UserResponse:
    return UserResponse.model_validate(current_user)
