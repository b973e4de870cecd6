"""Standalone note submission for an existing broadcast."""

from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from liveshelf.core.logging import get_logger
from liveshelf.core.settings import get_settings
from liveshelf.models.schema import Broadcast, BroadcastNote
from liveshelf.models.user import User
from liveshelf.schemas.broadcasts import AddNoteRequest
from liveshelf.services.errors import (
    BroadcastNotFound,
    DuplicateNote,
    NoteValidationError,
    StoreWriteError,
)
from liveshelf.utils.broadcast_utils import normalize_tag_list
from liveshelf.utils.dates import utcnow
from liveshelf.utils.error_logger import log_error

logger = get_logger(__name__)


def has_recent_duplicate(db: Session, broadcast_id: str, body: str) -> bool:
    """True when the same trimmed body was noted on this broadcast inside the debounce window."""
    window = timedelta(seconds=get_settings().note_duplicate_window_seconds)
    since = utcnow() - window
    try:
        match = (
            db.query(BroadcastNote.id)
            .filter(BroadcastNote.broadcast_id == broadcast_id)
            .filter(BroadcastNote.body == body)
            .filter(BroadcastNote.created_at >= since)
            .first()
        )
    except SQLAlchemyError as e:
        # A failed check lets the note through
        log_error("notes", e, operation="duplicate_check", item_id=broadcast_id)
        db.rollback()
        return False
    return match is not None


def add_note(db: Session, payload: AddNoteRequest, user: User | None) -> BroadcastNote:
    """
    Append a community note to a broadcast.

    Raises:
        NoteValidationError: broadcast_id or body missing
        BroadcastNotFound: unknown broadcast
        DuplicateNote: same body posted within the debounce window
        StoreWriteError: the insert failed
    """
    if not payload.broadcast_id:
        raise NoteValidationError("broadcast_id is required")

    body = (payload.body or "").strip()
    if not body:
        raise NoteValidationError("body is required")

    exists = (
        db.query(Broadcast.id).filter(Broadcast.broadcast_id == payload.broadcast_id).first()
    )
    if exists is None:
        raise BroadcastNotFound()

    if has_recent_duplicate(db, payload.broadcast_id, body):
        logger.info("Suppressed duplicate note on %s", payload.broadcast_id)
        raise DuplicateNote()

    note = BroadcastNote(
        broadcast_id=payload.broadcast_id,
        author_user_id=user.id if user else None,
        title="",
        body=body,
        tags=normalize_tag_list(payload.tags),
        timestamps=[],
    )
    db.add(note)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_error("notes", e, operation="insert_note", item_id=payload.broadcast_id)
        raise StoreWriteError("note could not be saved due to permissions") from e

    db.refresh(note)
    return note
