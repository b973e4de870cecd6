"""Decide whether a broadcast's stored preview is owed a refetch.

``fetching`` is an advisory lease: a fetch that has not reported back within
five minutes is treated as abandoned. ``fail`` backs off for 24 hours.
``success`` and ``partial`` never expire.
"""

from datetime import datetime, timedelta
from typing import Protocol

from liveshelf.models.metadata import PreviewFetchStatus
from liveshelf.utils.dates import to_naive_utc, utcnow

FETCHING_LEASE = timedelta(minutes=5)
FAIL_RETRY_AFTER = timedelta(hours=24)


class PreviewState(Protocol):
    preview_fetch_status: str | None
    preview_fetched_at: datetime | None


def should_retry_fetch(record: PreviewState, now: datetime | None = None) -> bool:
    """
    Return True when a preview fetch should be launched for ``record``.

    Args:
        record: Anything exposing ``preview_fetch_status``/``preview_fetched_at``
        now: Evaluation time (defaults to the current UTC time)
    """
    status = record.preview_fetch_status
    fetched_at = record.preview_fetched_at

    if not status or fetched_at is None:
        return True

    elapsed = to_naive_utc(now or utcnow()) - to_naive_utc(fetched_at)

    if status == PreviewFetchStatus.FETCHING.value:
        return elapsed > FETCHING_LEASE
    if status == PreviewFetchStatus.FAIL.value:
        return elapsed > FAIL_RETRY_AFTER
    return False


def is_preview_stale(record: PreviewState, now: datetime | None = None) -> bool:
    """Alias used on read paths: stale means a refetch is owed."""
    return should_retry_fetch(record, now)
