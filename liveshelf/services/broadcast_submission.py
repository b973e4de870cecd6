"""Broadcast submission: identify, claim or create, then attach a note."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from liveshelf.core.logging import get_logger
from liveshelf.models.metadata import BroadcasterStatus, PreviewResult
from liveshelf.models.schema import (
    BROADCAST_SOURCE_MANUAL,
    Broadcast,
    BroadcastNote,
    Broadcaster,
)
from liveshelf.models.user import User
from liveshelf.schemas.broadcasts import AddBroadcastRequest
from liveshelf.services.errors import (
    BroadcastUrlRequired,
    InvalidBroadcastUrl,
    StoreWriteError,
    UsernameRequired,
)
from liveshelf.services.preview_fetcher import PreviewFetcher
from liveshelf.utils.broadcast_utils import (
    extract_broadcast_id,
    extract_username_from_text,
    normalize_broadcast_url,
    normalize_username,
    parse_tags,
)
from liveshelf.utils.dates import utcnow
from liveshelf.utils.error_logger import log_error

logger = get_logger(__name__)

NOTE_PERMISSION_WARNING = "Note could not be saved due to permissions"


@dataclass(frozen=True)
class SubmissionResult:
    broadcast_id: str
    created: bool
    claimed: bool
    note_saved: bool
    warning: str | None = None


def claim_broadcast(
    db: Session, broadcast_id: str, user_id: int, username: str | None = None
) -> bool:
    """
    Claim an unclaimed broadcast for ``user_id``.

    The UPDATE is guarded by ``added_by_user_id IS NULL`` so concurrent
    claimants race in the store: exactly one sees a row updated.

    Returns:
        True if this call set the claimant, False if someone else already had
    """
    values: dict = {"added_by_user_id": user_id, "last_seen_at": utcnow()}
    if username:
        values["x_username"] = username

    updated = (
        db.query(Broadcast)
        .filter(Broadcast.broadcast_id == broadcast_id)
        .filter(Broadcast.added_by_user_id.is_(None))
        .update(values, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def ensure_broadcaster(db: Session, username: str) -> bool:
    """Insert a broadcaster row if missing; a uniqueness conflict is not an error.

    Returns:
        True if a row was created
    """
    db.add(Broadcaster(x_username=username, status=BroadcasterStatus.UNCLAIMED.value))
    try:
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        return False
    except SQLAlchemyError as e:
        db.rollback()
        log_error("broadcast_submission", e, operation="ensure_broadcaster", item_id=username)
        return False


async def _fetch_preview_safely(fetcher: PreviewFetcher, url: str) -> PreviewResult:
    try:
        return await fetcher(url)
    except Exception as e:
        log_error("broadcast_submission", e, operation="fetch_preview", context={"url": url})
        return PreviewResult.failed()


def _insert_broadcast(
    db: Session,
    broadcast_id: str,
    url: str,
    username: str,
    preview: PreviewResult,
    user: User | None,
) -> bool:
    """Insert a new broadcast; False when another request inserted it first."""
    now = utcnow()
    db.add(
        Broadcast(
            broadcast_id=broadcast_id,
            broadcast_url=url,
            x_username=username,
            source=BROADCAST_SOURCE_MANUAL,
            first_seen_at=now,
            last_seen_at=now,
            added_by_user_id=user.id if user else None,
            preview_title=preview.title,
            preview_description=preview.description,
            preview_image_url=preview.image_url,
            preview_site=preview.site.value,
            preview_fetch_status=preview.status.value,
            preview_fetched_at=now,
        )
    )
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Broadcast %s inserted concurrently: %s", broadcast_id, e)
        return False
    except SQLAlchemyError as e:
        db.rollback()
        log_error("broadcast_submission", e, operation="insert_broadcast", item_id=broadcast_id)
        raise StoreWriteError("Failed to save broadcast") from e
    return True


def _claim_existing(
    db: Session, existing: Broadcast, user: User | None, username: str | None
) -> bool:
    if user is None or existing.added_by_user_id is not None:
        return False
    claimed = claim_broadcast(db, existing.broadcast_id, user.id, username)
    if not claimed:
        logger.info("Claim on %s lost to a concurrent claimant", existing.broadcast_id)
    return claimed


def _save_note(
    db: Session, broadcast_id: str, body: str, tags: list[str], user: User | None
) -> str | None:
    """Insert a note; returns a warning instead of raising on store failure."""
    db.add(
        BroadcastNote(
            broadcast_id=broadcast_id,
            author_user_id=user.id if user else None,
            title="",
            body=body,
            tags=tags,
            timestamps=[],
        )
    )
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_error("broadcast_submission", e, operation="insert_note", item_id=broadcast_id)
        return NOTE_PERMISSION_WARNING
    return None


async def submit_broadcast(
    db: Session,
    payload: AddBroadcastRequest,
    user: User | None,
    fetch_preview: PreviewFetcher,
) -> SubmissionResult:
    """
    Catalogue a submitted broadcast URL.

    Existing unclaimed broadcasts are claimed by ``user``; unknown broadcasts
    get a preview fetch and are inserted already claimed by their creator. A
    note is attached when a body or tags were supplied; failing to save it
    only produces a warning.

    Args:
        db: Active database session.
        payload: Submission body.
        user: Submitting user (None only when anonymous submission is enabled).
        fetch_preview: Preview fetcher used for new broadcasts.

    Raises:
        BroadcastUrlRequired, InvalidBroadcastUrl, UsernameRequired: before any mutation
        StoreWriteError: when the broadcast row itself cannot be written
    """
    if not payload.broadcast_url:
        raise BroadcastUrlRequired()

    broadcast_id = extract_broadcast_id(payload.broadcast_url)
    if not broadcast_id:
        raise InvalidBroadcastUrl()

    normalized_url = normalize_broadcast_url(broadcast_id)
    username = normalize_username(payload.x_username)
    tags = parse_tags(payload.tags)
    note_body = (payload.note_body or "").strip()

    created = False
    claimed = False
    existing = db.query(Broadcast).filter(Broadcast.broadcast_id == broadcast_id).first()

    if existing is None:
        logger.info("Fetching preview for new broadcast %s", broadcast_id)
        preview = await _fetch_preview_safely(fetch_preview, normalized_url)
        logger.info(
            "Preview for %s: status=%s title=%s image=%s site=%s",
            broadcast_id,
            preview.status.value,
            bool(preview.title),
            bool(preview.image_url),
            preview.site.value,
        )

        if not username:
            username = extract_username_from_text(preview.title) or extract_username_from_text(
                preview.author
            )
        if not username:
            raise UsernameRequired()

        created = _insert_broadcast(db, broadcast_id, normalized_url, username, preview, user)
        if created:
            claimed = user is not None
        else:
            existing = (
                db.query(Broadcast).filter(Broadcast.broadcast_id == broadcast_id).first()
            )

    if existing is not None:
        claimed = _claim_existing(db, existing, user, username)
        username = username or existing.x_username

    if username:
        ensure_broadcaster(db, username)

    note_saved = True
    warning = None
    if note_body or tags:
        warning = _save_note(db, broadcast_id, note_body, tags, user)
        note_saved = warning is None

    return SubmissionResult(
        broadcast_id=broadcast_id,
        created=created,
        claimed=claimed,
        note_saved=note_saved,
        warning=warning,
    )
