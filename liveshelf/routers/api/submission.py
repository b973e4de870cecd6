"""Endpoint for submitting broadcast URLs."""

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from liveshelf.core.db import get_db_session
from liveshelf.core.deps import get_submitting_user
from liveshelf.models.user import User
from liveshelf.routers.api.responses import catalogue_error_response, internal_error_response
from liveshelf.schemas.broadcasts import AddBroadcastRequest, AddBroadcastResponse
from liveshelf.services.broadcast_submission import submit_broadcast
from liveshelf.services.errors import CatalogueError
from liveshelf.services.preview_fetcher import PreviewFetcher, get_preview_fetcher

router = APIRouter()


@router.post(
    "/add",
    response_model=AddBroadcastResponse,
    response_model_exclude_none=True,
    summary="Add or claim a broadcast",
    description=(
        "Catalogue an X broadcast URL. New broadcasts are fetched for preview metadata and "
        "claimed by the submitter; unclaimed existing broadcasts are claimed. An optional "
        "note and tags are attached."
    ),
    responses={
        400: {"description": "Invalid URL or username could not be determined"},
        401: {"description": "Authentication required"},
    },
)
async def add_broadcast(
    payload: AddBroadcastRequest,
    db: Annotated[Session, Depends(get_db_session)],
    user: Annotated[User | None, Depends(get_submitting_user)],
    fetch_preview: Annotated[PreviewFetcher, Depends(get_preview_fetcher)],
):
    """Create, claim or annotate a broadcast."""
    try:
        result = await submit_broadcast(db, payload, user, fetch_preview)
    except CatalogueError as exc:
        return catalogue_error_response(exc)
    except Exception as exc:
        return internal_error_response("add_broadcast", exc, broadcast_url=payload.broadcast_url)

    response = AddBroadcastResponse(
        success=True,
        broadcast_id=result.broadcast_id,
        note_saved=result.note_saved,
        warning=result.warning,
    )
    return JSONResponse(content=response.model_dump(mode="json", exclude_none=True))
