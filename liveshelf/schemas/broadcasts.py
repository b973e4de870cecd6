"""Pydantic request and response models for the broadcast API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from liveshelf.models.metadata import PreviewFetchStatus, PreviewSite


class AddBroadcastRequest(BaseModel):
    """Body of POST /api/add. Fields are optional so validation errors stay 400s."""

    broadcast_url: str | None = Field(None, description="https://x.com/i/broadcasts/<id>")
    x_username: str | None = Field(None, description="Broadcaster handle hint, '@' optional")
    note_body: str | None = Field(None, description="Free-text note to attach")
    tags: str | None = Field(None, description="Comma separated tags")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "broadcast_url": "https://x.com/i/broadcasts/1YqKDqRwXoVKV",
                "x_username": "@jane",
                "note_body": "Q&A starts at 40:00",
                "tags": "music, live",
            }
        }
    )


class AddBroadcastResponse(BaseModel):
    success: bool
    broadcast_id: str | None = None
    note_saved: bool | None = None
    warning: str | None = None
    error: str | None = None


class AddNoteRequest(BaseModel):
    broadcast_id: str | None = None
    body: str | None = None
    tags: str | list[str] | None = None


class SimpleResponse(BaseModel):
    success: bool
    error: str | None = None


class PreviewData(BaseModel):
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    site: PreviewSite | None = None
    status: PreviewFetchStatus | None = None
    fetched_at: datetime | None = None


class PreviewResponse(BaseModel):
    success: bool = True
    preview: PreviewData
    cached: bool


class NoteItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str | None = None
    body: str
    tags: list[str] = Field(default_factory=list)
    author_user_id: int | None = None
    created_at: datetime | None = None


class BroadcastItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    broadcast_id: str
    broadcast_url: str
    x_username: str | None = None
    published_at: datetime | None = None
    first_seen_at: datetime
    added_by_user_id: int | None = None
    preview_title: str | None = None
    preview_description: str | None = None
    preview_image_url: str | None = None
    preview_site: PreviewSite | None = None
    preview_fetch_status: PreviewFetchStatus | None = None
    preview_fetched_at: datetime | None = None
    preview_stale: bool = False


class BroadcastWithNotes(BroadcastItem):
    notes: list[NoteItem] = Field(default_factory=list)


class BroadcastListResponse(BaseModel):
    broadcasts: list[BroadcastWithNotes]
    count: int


class TagShelfResponse(BaseModel):
    tag: str
    broadcasts: list[BroadcastWithNotes]
    count: int
    note_count: int


class BroadcasterShelfResponse(BaseModel):
    x_username: str
    broadcasts: list[BroadcastWithNotes]
    count: int
    latest_at: datetime | None = None


class BroadcasterSearchResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    x_username: str
    status: str


class UserShelfResponse(BaseModel):
    added_broadcasts: list[BroadcastWithNotes]
    contributed_broadcasts: list[BroadcastWithNotes]


class BroadcasterSearchResponse(BaseModel):
    broadcasters: list[BroadcasterSearchResult]
    count: int
