"""Tests for listing, search and shelf endpoints."""

from datetime import timedelta

import pytest

from liveshelf.core.security import create_access_token
from liveshelf.models.schema import Broadcast, BroadcastNote, Broadcaster
from liveshelf.utils.dates import utcnow


def _add_broadcast(db_session, broadcast_id, username="host", **fields):
    record = Broadcast(
        broadcast_id=broadcast_id,
        broadcast_url=f"https://x.com/i/broadcasts/{broadcast_id}",
        x_username=username,
        **fields,
    )
    db_session.add(record)
    db_session.commit()
    return record


def _add_note(db_session, broadcast_id, body="note", tags=None, author=None, age=timedelta(0)):
    note = BroadcastNote(
        broadcast_id=broadcast_id,
        body=body,
        tags=tags or [],
        timestamps=[],
        author_user_id=author,
        created_at=utcnow() - age,
    )
    db_session.add(note)
    db_session.commit()
    return note


def _ids(payload):
    return [item["broadcast_id"] for item in payload["broadcasts"]]


@pytest.fixture
def catalogue(db_session):
    now = utcnow()
    _add_broadcast(db_session, "unpublished", first_seen_at=now)
    _add_broadcast(
        db_session,
        "older",
        username="Jane",
        published_at=now - timedelta(days=3),
        first_seen_at=now - timedelta(days=3),
        preview_title="Morning jazz session",
    )
    _add_broadcast(
        db_session,
        "newest",
        published_at=now - timedelta(hours=1),
        first_seen_at=now - timedelta(days=10),
    )
    _add_broadcast(
        db_session,
        "ancient",
        username="jane",
        first_seen_at=now - timedelta(days=30),
        preview_fetch_status="fail",
        preview_fetched_at=now - timedelta(days=29),
    )
    return now


class TestListBroadcasts:
    def test_recency_order_puts_unpublished_last(self, client, catalogue):
        response = client.get("/api/broadcasts")

        assert response.status_code == 200
        data = response.json()
        assert _ids(data) == ["newest", "older", "unpublished", "ancient"]
        assert data["count"] == 4

    def test_pagination_keeps_total(self, client, catalogue):
        data = client.get("/api/broadcasts", params={"limit": 2, "offset": 1}).json()

        assert _ids(data) == ["older", "unpublished"]
        assert data["count"] == 4

    @pytest.mark.parametrize(
        "window,expected",
        [
            ("24h", ["newest", "unpublished"]),
            ("7d", ["newest", "older", "unpublished"]),
            ("all", ["newest", "older", "unpublished", "ancient"]),
        ],
    )
    def test_time_filter(self, client, catalogue, window, expected):
        data = client.get("/api/broadcasts", params={"time": window}).json()

        assert _ids(data) == expected

    def test_invalid_time_filter(self, client, catalogue):
        response = client.get("/api/broadcasts", params={"time": "1y"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_username_filter_is_case_insensitive(self, client, catalogue):
        data = client.get("/api/broadcasts", params={"username": "JANE"}).json()

        assert _ids(data) == ["older", "ancient"]

    def test_notes_and_staleness_are_attached(self, client, db_session, catalogue):
        _add_note(db_session, "ancient", body="first", age=timedelta(minutes=5))
        _add_note(db_session, "ancient", body="second")

        data = client.get("/api/broadcasts").json()
        ancient = next(item for item in data["broadcasts"] if item["broadcast_id"] == "ancient")
        older = next(item for item in data["broadcasts"] if item["broadcast_id"] == "older")

        assert [note["body"] for note in ancient["notes"]] == ["first", "second"]
        assert ancient["preview_stale"] is True
        assert older["notes"] == []


class TestSearch:
    def test_matches_preview_text_and_username(self, client, catalogue):
        assert _ids(client.get("/api/search", params={"q": "jazz"}).json()) == ["older"]
        assert _ids(client.get("/api/search", params={"q": "jan"}).json()) == ["older", "ancient"]

    def test_matches_note_body_and_tags(self, client, db_session, catalogue):
        _add_note(db_session, "newest", body="great Q&A segment")
        _add_note(db_session, "unpublished", body="nothing", tags=["karaoke"])

        assert _ids(client.get("/api/search", params={"q": "q&a"}).json()) == ["newest"]
        assert _ids(client.get("/api/search", params={"q": "karaoke"}).json()) == ["unpublished"]

    def test_sources_are_unioned_without_duplicates(self, client, db_session, catalogue):
        _add_note(db_session, "older", body="jazz again")

        data = client.get("/api/search", params={"q": "jazz"}).json()

        assert _ids(data) == ["older"]
        assert data["count"] == 1

    def test_wildcards_are_literal(self, client, catalogue):
        assert _ids(client.get("/api/search", params={"q": "%"}).json()) == []

    def test_blank_query(self, client, catalogue):
        data = client.get("/api/search", params={"q": "   "}).json()

        assert data == {"broadcasts": [], "count": 0}

    def test_search_broadcasters(self, client, db_session):
        for name in ("janedoe", "jane", "bob"):
            db_session.add(Broadcaster(x_username=name))
        db_session.commit()

        data = client.get("/api/search/broadcasters", params={"q": "JANE"}).json()

        assert [row["x_username"] for row in data["broadcasters"]] == ["jane", "janedoe"]
        assert data["broadcasters"][0]["status"] == "unclaimed"


class TestTagShelf:
    def test_counts_broadcasts_and_notes(self, client, db_session, catalogue):
        _add_note(db_session, "newest", tags=["music", "live"])
        _add_note(db_session, "newest", tags=["music"])
        _add_note(db_session, "older", tags=["music"])
        _add_note(db_session, "ancient", tags=["musical"])

        data = client.get("/api/tags/Music").json()

        assert data["tag"] == "music"
        assert _ids(data) == ["newest", "older"]
        assert data["count"] == 2
        assert data["note_count"] == 3

    def test_percent_encoded_tag(self, client, db_session, catalogue):
        _add_note(db_session, "older", tags=["hip hop"])

        data = client.get("/api/tags/hip%20hop").json()

        assert _ids(data) == ["older"]

    def test_unknown_tag_is_empty(self, client, catalogue):
        data = client.get("/api/tags/nothing").json()

        assert data == {"tag": "nothing", "broadcasts": [], "count": 0, "note_count": 0}

    def test_overlong_tag_is_rejected(self, client):
        response = client.get("/api/tags/" + "a" * 51)

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid tag"}


class TestBroadcasterShelf:
    def test_lists_by_first_seen(self, client, catalogue):
        data = client.get("/api/broadcasters/@JANE").json()

        assert data["x_username"] == "jane"
        assert _ids(data) == ["older", "ancient"]
        assert data["count"] == 2
        assert data["latest_at"] is not None

    def test_unknown_broadcaster(self, client):
        data = client.get("/api/broadcasters/nobody").json()

        assert data["count"] == 0
        assert data["latest_at"] is None

    def test_invalid_username(self, client):
        response = client.get("/api/broadcasters/@")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid username"


class TestUserShelf:
    def test_requires_authentication(self, client):
        response = client.get("/api/me/shelf")

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_added_and_contributed(self, client, db_session, catalogue, user, auth_headers):
        db_session.query(Broadcast).filter_by(broadcast_id="older").update(
            {"added_by_user_id": user.id}
        )
        db_session.commit()
        _add_note(db_session, "older", author=user.id)
        _add_note(db_session, "ancient", author=user.id, age=timedelta(days=2))
        _add_note(db_session, "newest", author=user.id, age=timedelta(hours=1))
        _add_note(db_session, "unpublished", author=None)

        data = client.get("/api/me/shelf", headers=auth_headers).json()

        assert [b["broadcast_id"] for b in data["added_broadcasts"]] == ["older"]
        assert [b["broadcast_id"] for b in data["contributed_broadcasts"]] == [
            "newest",
            "ancient",
        ]

    def test_other_users_work_is_not_included(self, client, db_session, catalogue, other_user):
        _add_note(db_session, "older", author=other_user.id)
        headers = {"Authorization": f"Bearer {create_access_token(other_user.id)}"}

        data = client.get("/api/me/shelf", headers=headers).json()

        assert data["added_broadcasts"] == []
        assert [b["broadcast_id"] for b in data["contributed_broadcasts"]] == ["older"]

    def test_me(self, client, user, auth_headers):
        data = client.get("/api/me", headers=auth_headers).json()

        assert data["id"] == user.id
        assert data["email"] == "viewer@example.com"
