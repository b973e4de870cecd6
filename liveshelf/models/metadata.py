"""Enumerations and value objects shared by the broadcast catalogue."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PreviewSite(str, Enum):
    X = "x"
    TWITTER = "twitter"
    OTHER = "other"
    UNKNOWN = "unknown"


class PreviewFetchStatus(str, Enum):
    # Absent (NULL) means the preview was never fetched
    FETCHING = "fetching"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAIL = "fail"


class BroadcasterStatus(str, Enum):
    UNCLAIMED = "unclaimed"
    PENDING = "pending"
    CLAIMED = "claimed"


class TimeFilter(str, Enum):
    ALL = "all"
    LAST_24H = "24h"
    LAST_7D = "7d"


class PreviewResult(BaseModel):
    """Outcome of one preview fetch; every failure is a ``fail`` value, never an exception."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    site: PreviewSite = PreviewSite.UNKNOWN
    status: PreviewFetchStatus = PreviewFetchStatus.FAIL
    author: str | None = Field(None, description="Author or creator handle, when exposed")

    @classmethod
    def failed(cls, site: PreviewSite = PreviewSite.UNKNOWN) -> PreviewResult:
        """Build the all-null failure result."""
        return cls(site=site, status=PreviewFetchStatus.FAIL)
