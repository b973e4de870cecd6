"""Read-side queries behind the home, search, tag, broadcaster and user shelves."""

import json
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Query, Session

from liveshelf.models.metadata import TimeFilter
from liveshelf.models.schema import Broadcast, BroadcastNote, Broadcaster
from liveshelf.schemas.broadcasts import (
    BroadcasterSearchResult,
    BroadcastWithNotes,
    NoteItem,
)
from liveshelf.services.preview_freshness import is_preview_stale
from liveshelf.utils.dates import time_filter_since, utcnow

DEFAULT_PAGE_SIZE = 20
DEFAULT_SHELF_SIZE = 30


@dataclass(frozen=True)
class TagShelf:
    broadcasts: list[BroadcastWithNotes]
    count: int
    note_count: int


@dataclass(frozen=True)
class BroadcasterShelf:
    broadcasts: list[BroadcastWithNotes]
    count: int
    latest_at: datetime | None


@dataclass(frozen=True)
class UserShelf:
    added: list[BroadcastWithNotes]
    contributed: list[BroadcastWithNotes]


def like_pattern(raw: str) -> str:
    """Wrap user input for a substring ILIKE, escaping wildcard characters."""
    escaped = raw.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def json_like_pattern(raw: str, *, quoted: bool = False) -> str:
    """Substring pattern matching ``raw`` as it appears inside a serialized JSON list.

    With ``quoted`` the pattern matches a whole list element.
    """
    encoded = json.dumps(raw)
    return like_pattern(encoded if quoted else encoded[1:-1])


def apply_time_filter(query: Query, time_filter: TimeFilter, now: datetime | None = None) -> Query:
    """Keep broadcasts published or first seen inside the filter window."""
    since = time_filter_since(time_filter, now)
    if since is None:
        return query
    return query.filter(
        or_(Broadcast.published_at >= since, Broadcast.first_seen_at >= since)
    )


def apply_recency_order(query: Query) -> Query:
    """published_at desc with nulls last, then first_seen_at desc."""
    return query.order_by(
        Broadcast.published_at.is_(None),
        Broadcast.published_at.desc(),
        Broadcast.first_seen_at.desc(),
    )


def load_notes(db: Session, broadcast_ids: list[str]) -> dict[str, list[BroadcastNote]]:
    """Fetch every note for a set of broadcasts in one query, grouped by broadcast."""
    grouped: dict[str, list[BroadcastNote]] = defaultdict(list)
    if not broadcast_ids:
        return grouped
    notes = (
        db.query(BroadcastNote)
        .filter(BroadcastNote.broadcast_id.in_(broadcast_ids))
        .order_by(BroadcastNote.created_at.asc(), BroadcastNote.id.asc())
        .all()
    )
    for note in notes:
        grouped[note.broadcast_id].append(note)
    return grouped


def attach_notes(
    db: Session, broadcasts: list[Broadcast], now: datetime | None = None
) -> list[BroadcastWithNotes]:
    """Convert rows to response models carrying their notes and preview staleness."""
    notes_by_broadcast = load_notes(db, [b.broadcast_id for b in broadcasts])
    now = now or utcnow()
    items = []
    for broadcast in broadcasts:
        item = BroadcastWithNotes.model_validate(broadcast)
        item.notes = [
            NoteItem.model_validate(note)
            for note in notes_by_broadcast.get(broadcast.broadcast_id, [])
        ]
        item.preview_stale = is_preview_stale(broadcast, now)
        items.append(item)
    return items


def list_recent_broadcasts(
    db: Session,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
    username: str | None = None,
    time_filter: TimeFilter = TimeFilter.ALL,
) -> tuple[list[BroadcastWithNotes], int]:
    """Newest broadcasts first, with the total count for pagination."""
    query = db.query(Broadcast)
    if username:
        query = query.filter(Broadcast.x_username.ilike(like_pattern(username), escape="\\"))
    query = apply_time_filter(query, time_filter)

    total = query.count()
    broadcasts = apply_recency_order(query).offset(offset).limit(limit).all()
    return attach_notes(db, broadcasts), total


def _matching_broadcast_ids(db: Session, q: str) -> set[str]:
    pattern = like_pattern(q)
    ids: set[str] = set()

    broadcast_rows = (
        db.query(Broadcast.broadcast_id)
        .filter(
            or_(
                Broadcast.x_username.ilike(pattern, escape="\\"),
                Broadcast.preview_title.ilike(pattern, escape="\\"),
                Broadcast.preview_description.ilike(pattern, escape="\\"),
            )
        )
        .all()
    )
    ids.update(row.broadcast_id for row in broadcast_rows)

    note_rows = (
        db.query(BroadcastNote.broadcast_id)
        .filter(
            or_(
                BroadcastNote.body.ilike(pattern, escape="\\"),
                BroadcastNote.title.ilike(pattern, escape="\\"),
                cast(BroadcastNote.tags, String).ilike(json_like_pattern(q), escape="\\"),
            )
        )
        .all()
    )
    ids.update(row.broadcast_id for row in note_rows)
    return ids


def search_broadcasts(
    db: Session,
    q: str | None,
    *,
    time_filter: TimeFilter = TimeFilter.ALL,
    limit: int = DEFAULT_SHELF_SIZE,
) -> list[BroadcastWithNotes]:
    """
    Search broadcasts by username, preview text, note text and tags.

    Matches from each source are unioned by broadcast id before the final,
    time-filtered and recency-ordered fetch. A blank query matches nothing.
    """
    if not q or not q.strip():
        return []

    ids = _matching_broadcast_ids(db, q.strip())
    if not ids:
        return []

    query = db.query(Broadcast).filter(Broadcast.broadcast_id.in_(ids))
    query = apply_time_filter(query, time_filter)
    broadcasts = apply_recency_order(query).limit(limit).all()
    return attach_notes(db, broadcasts)


def search_broadcasters(
    db: Session, q: str | None, *, limit: int = DEFAULT_PAGE_SIZE
) -> list[BroadcasterSearchResult]:
    """Case-insensitive username substring search over known broadcasters."""
    if not q or not q.strip():
        return []
    rows = (
        db.query(Broadcaster)
        .filter(Broadcaster.x_username.ilike(like_pattern(q.strip()), escape="\\"))
        .order_by(Broadcaster.x_username.asc())
        .limit(limit)
        .all()
    )
    return [BroadcasterSearchResult.model_validate(row) for row in rows]


def _notes_with_tag(db: Session, tag: str) -> list[BroadcastNote]:
    # Text prefilter on the serialized list, exact membership checked below
    candidates = (
        db.query(BroadcastNote)
        .filter(
            cast(BroadcastNote.tags, String).like(
                json_like_pattern(tag, quoted=True), escape="\\"
            )
        )
        .all()
    )
    return [note for note in candidates if tag in (note.tags or [])]


def get_tag_shelf(
    db: Session,
    tag: str,
    *,
    time_filter: TimeFilter = TimeFilter.ALL,
    limit: int = DEFAULT_SHELF_SIZE,
) -> TagShelf:
    """Broadcasts with at least one note carrying ``tag`` (already normalized)."""
    tagged_notes = _notes_with_tag(db, tag)
    if not tagged_notes:
        return TagShelf(broadcasts=[], count=0, note_count=0)

    ids = {note.broadcast_id for note in tagged_notes}
    query = apply_time_filter(
        db.query(Broadcast).filter(Broadcast.broadcast_id.in_(ids)), time_filter
    )
    total = query.count()
    broadcasts = apply_recency_order(query).limit(limit).all()
    return TagShelf(
        broadcasts=attach_notes(db, broadcasts),
        count=total,
        note_count=len(tagged_notes),
    )


def get_broadcaster_shelf(
    db: Session,
    username: str,
    *,
    time_filter: TimeFilter = TimeFilter.ALL,
    limit: int = DEFAULT_SHELF_SIZE,
) -> BroadcasterShelf:
    """A broadcaster's archive, newest first seen first."""
    query = db.query(Broadcast).filter(func.lower(Broadcast.x_username) == username.lower())
    query = apply_time_filter(query, time_filter)

    total = query.count()
    broadcasts = query.order_by(Broadcast.first_seen_at.desc()).limit(limit).all()
    latest_at = broadcasts[0].first_seen_at if broadcasts else None
    return BroadcasterShelf(
        broadcasts=attach_notes(db, broadcasts), count=total, latest_at=latest_at
    )


def get_user_shelf(db: Session, user_id: int) -> UserShelf:
    """
    Broadcasts a user claimed plus broadcasts they only wrote notes on.

    The contributed list excludes claimed broadcasts and is ordered by the
    user's most recent note on each.
    """
    added = (
        db.query(Broadcast)
        .filter(Broadcast.added_by_user_id == user_id)
        .order_by(Broadcast.first_seen_at.desc())
        .all()
    )
    added_ids = {b.broadcast_id for b in added}

    latest_note_rows = (
        db.query(
            BroadcastNote.broadcast_id,
            func.max(BroadcastNote.created_at).label("latest_note_at"),
        )
        .filter(BroadcastNote.author_user_id == user_id)
        .group_by(BroadcastNote.broadcast_id)
        .all()
    )
    latest_by_id = {
        row.broadcast_id: row.latest_note_at
        for row in latest_note_rows
        if row.broadcast_id not in added_ids
    }

    contributed: list[Broadcast] = []
    if latest_by_id:
        contributed = (
            db.query(Broadcast).filter(Broadcast.broadcast_id.in_(latest_by_id.keys())).all()
        )
        contributed.sort(key=lambda b: latest_by_id[b.broadcast_id], reverse=True)

    return UserShelf(added=attach_notes(db, added), contributed=attach_notes(db, contributed))
