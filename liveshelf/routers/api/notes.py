"""Endpoint for adding community notes to a broadcast."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from liveshelf.core.db import get_db_session
from liveshelf.core.deps import get_optional_user
from liveshelf.models.user import User
from liveshelf.routers.api.responses import catalogue_error_response, internal_error_response
from liveshelf.schemas.broadcasts import AddNoteRequest, SimpleResponse
from liveshelf.services.errors import CatalogueError
from liveshelf.services.notes import add_note

router = APIRouter()


@router.post(
    "/notes/add",
    response_model=SimpleResponse,
    response_model_exclude_none=True,
    summary="Add a note to a broadcast",
    responses={
        400: {"description": "Missing fields, unknown broadcast or duplicate note"},
        500: {"description": "Note could not be stored"},
    },
)
def add_broadcast_note(
    payload: AddNoteRequest,
    db: Annotated[Session, Depends(get_db_session)],
    user: Annotated[User | None, Depends(get_optional_user)],
):
    """Append a note; the author is recorded when the caller is signed in."""
    try:
        add_note(db, payload, user)
    except CatalogueError as exc:
        return catalogue_error_response(exc)
    except Exception as exc:
        return internal_error_response("add_note", exc, broadcast_id=payload.broadcast_id)
    return SimpleResponse(success=True)
