"""Serve a broadcast's stored preview, refetching it when the freshness policy says so."""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from liveshelf.core.logging import get_logger
from liveshelf.models.metadata import PreviewFetchStatus
from liveshelf.models.schema import Broadcast
from liveshelf.schemas.broadcasts import PreviewData, PreviewResponse
from liveshelf.services.errors import BroadcastNotFound
from liveshelf.services.preview_fetcher import PreviewFetcher
from liveshelf.services.preview_freshness import should_retry_fetch
from liveshelf.utils.dates import utcnow
from liveshelf.utils.error_logger import log_error

logger = get_logger(__name__)


def _stored_preview(broadcast: Broadcast) -> PreviewData:
    return PreviewData(
        title=broadcast.preview_title,
        description=broadcast.preview_description,
        image_url=broadcast.preview_image_url,
        site=broadcast.preview_site,
        status=broadcast.preview_fetch_status,
        fetched_at=broadcast.preview_fetched_at,
    )


def _mark_fetching(db: Session, broadcast: Broadcast) -> None:
    """Take the advisory fetch lease; losing it to another request is harmless."""
    broadcast.preview_fetch_status = PreviewFetchStatus.FETCHING.value
    broadcast.preview_fetched_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_error("preview_refresh", e, operation="mark_fetching", item_id=broadcast.broadcast_id)


async def get_or_refresh_preview(
    db: Session, broadcast_id: str, fetch_preview: PreviewFetcher
) -> PreviewResponse:
    """
    Return the stored preview when it is fresh, otherwise fetch and persist a new one.

    Args:
        db: Active database session
        broadcast_id: Broadcast identifier
        fetch_preview: Fetcher invoked with the broadcast's canonical URL

    Raises:
        BroadcastNotFound: no broadcast with this id
    """
    broadcast = db.query(Broadcast).filter(Broadcast.broadcast_id == broadcast_id).first()
    if broadcast is None:
        raise BroadcastNotFound("Broadcast not found")

    if not should_retry_fetch(broadcast):
        logger.info(
            "Returning cached preview for %s (status %s)",
            broadcast_id,
            broadcast.preview_fetch_status,
        )
        return PreviewResponse(preview=_stored_preview(broadcast), cached=True)

    _mark_fetching(db, broadcast)

    logger.info("Fetching preview for %s (%s)", broadcast_id, broadcast.broadcast_url)
    result = await fetch_preview(broadcast.broadcast_url)
    fetched_at = utcnow()
    logger.info(
        "Preview fetch for %s finished: status=%s site=%s",
        broadcast_id,
        result.status.value,
        result.site.value,
    )

    broadcast.preview_title = result.title
    broadcast.preview_description = result.description
    broadcast.preview_image_url = result.image_url
    broadcast.preview_site = result.site.value
    broadcast.preview_fetch_status = result.status.value
    broadcast.preview_fetched_at = fetched_at
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_error("preview_refresh", e, operation="persist_preview", item_id=broadcast_id)

    return PreviewResponse(
        preview=PreviewData(
            title=result.title,
            description=result.description,
            image_url=result.image_url,
            site=result.site,
            status=result.status,
            fetched_at=fetched_at,
        ),
        cached=False,
    )
