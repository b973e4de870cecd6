"""Endpoint serving cached or freshly fetched broadcast previews."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from liveshelf.core.db import get_db_session
from liveshelf.routers.api.responses import error_response, internal_error_response
from liveshelf.schemas.broadcasts import PreviewResponse
from liveshelf.services.errors import BroadcastNotFound
from liveshelf.services.preview_fetcher import PreviewFetcher, get_preview_fetcher
from liveshelf.services.preview_refresh import get_or_refresh_preview

router = APIRouter()


@router.get(
    "/preview",
    response_model=PreviewResponse,
    summary="Get a broadcast preview",
    description=(
        "Return the stored preview when it is still fresh (cached=true), otherwise fetch, "
        "persist and return a new one (cached=false)."
    ),
    responses={
        400: {"description": "Missing broadcast_id"},
        404: {"description": "Broadcast not found"},
    },
)
async def get_preview(
    db: Annotated[Session, Depends(get_db_session)],
    fetch_preview: Annotated[PreviewFetcher, Depends(get_preview_fetcher)],
    broadcast_id: str | None = Query(None, description="Broadcast identifier"),
):
    if not broadcast_id:
        return error_response(status.HTTP_400_BAD_REQUEST, "Missing broadcast_id")
    try:
        return await get_or_refresh_preview(db, broadcast_id, fetch_preview)
    except BroadcastNotFound as exc:
        return error_response(status.HTTP_404_NOT_FOUND, exc.message)
    except Exception as exc:
        return internal_error_response("preview", exc, broadcast_id=broadcast_id)
