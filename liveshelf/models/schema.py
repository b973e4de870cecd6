from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import validates

from liveshelf.core.db import Base
from liveshelf.core.logging import get_logger
from liveshelf.models.metadata import BroadcasterStatus
from liveshelf.models.user import User  # noqa: F401
from liveshelf.utils.dates import utcnow

logger = get_logger(__name__)

BROADCAST_SOURCE_MANUAL = "manual"


class Broadcast(Base):
    __tablename__ = "broadcasts"

    id = Column(Integer, primary_key=True)
    broadcast_id = Column(String(64), nullable=False, unique=True, index=True)
    broadcast_url = Column(String(2048), nullable=False)
    x_username = Column(String(50), nullable=True, index=True)
    source = Column(String(20), default=BROADCAST_SOURCE_MANUAL, nullable=False)

    # Claim: set once, only while NULL (see claim_broadcast)
    added_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    first_seen_at = Column(DateTime, default=utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=utcnow, nullable=False)
    published_at = Column(DateTime, nullable=True)

    # Cached OpenGraph / card metadata
    preview_title = Column(Text, nullable=True)
    preview_description = Column(Text, nullable=True)
    preview_image_url = Column(String(2048), nullable=True)
    preview_site = Column(String(20), nullable=True)
    preview_fetch_status = Column(String(20), nullable=True, index=True)
    preview_fetched_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("idx_broadcast_recency", "published_at", "first_seen_at"),)

    def __repr__(self):
        return f"<Broadcast(broadcast_id={self.broadcast_id} x_username={self.x_username})>"


class BroadcastNote(Base):
    __tablename__ = "broadcast_notes"

    id = Column(Integer, primary_key=True)
    broadcast_id = Column(
        String(64), ForeignKey("broadcasts.broadcast_id"), nullable=False, index=True
    )
    author_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(500), default="", nullable=False)
    body = Column(Text, default="", nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    timestamps = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (Index("idx_note_broadcast_created", "broadcast_id", "created_at"),)

    @validates("tags")
    def validate_tags(self, key, value):
        """Keep stored tags a list of strings; normalization happens before insert."""
        if not value:
            return []
        if not isinstance(value, list):
            logger.warning("Discarding non-list tags value for note: %r", value)
            return []
        return [str(tag) for tag in value]


class Broadcaster(Base):
    __tablename__ = "broadcasters"

    id = Column(Integer, primary_key=True)
    x_username = Column(String(50), nullable=False, unique=True, index=True)
    status = Column(String(20), default=BroadcasterStatus.UNCLAIMED.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
