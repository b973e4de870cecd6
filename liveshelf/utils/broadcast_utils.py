"""Identifier, username and tag normalization for broadcast submissions.

All helpers are total: bad input yields None or an empty list, never an exception.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

BROADCAST_ID_REGEX = re.compile(r"/i/broadcasts/([A-Za-z0-9_-]+)")
CANONICAL_BROADCAST_URL = "https://x.com/i/broadcasts/{broadcast_id}"

_PAREN_HANDLE_REGEX = re.compile(r"\(@([A-Za-z0-9_]+)\)")
_LEADING_HANDLE_REGEX = re.compile(r"^@([A-Za-z0-9_]+)")
_BARE_HANDLE_REGEX = re.compile(r"^[A-Za-z0-9_]+$")

MAX_TAGS = 10
MIN_TAG_LENGTH = 1
MAX_TAG_LENGTH = 50


def extract_broadcast_id(url: str | None) -> str | None:
    """Return the token from an ``/i/broadcasts/<token>`` path, or None."""
    if not url or not isinstance(url, str):
        return None
    match = BROADCAST_ID_REGEX.search(url)
    return match.group(1) if match else None


def normalize_broadcast_url(broadcast_id: str) -> str:
    """Build the canonical URL for a broadcast id."""
    return CANONICAL_BROADCAST_URL.format(broadcast_id=broadcast_id)


def normalize_username(username: str | None) -> str | None:
    """Trim, strip one leading ``@`` and lowercase; empty results become None."""
    if not username or not isinstance(username, str):
        return None
    trimmed = username.strip()
    if trimmed.startswith("@"):
        trimmed = trimmed[1:]
    return trimmed.lower() or None


def extract_username_from_text(text: str | None) -> str | None:
    """
    Find an X handle in free text such as a preview title or author field.

    Tried in order: ``Name (@handle)``, a leading ``@handle``, then the whole
    text being a bare handle.
    """
    if not text or not isinstance(text, str):
        return None

    paren_match = _PAREN_HANDLE_REGEX.search(text)
    if paren_match:
        return normalize_username(paren_match.group(1))

    stripped = text.strip()
    leading_match = _LEADING_HANDLE_REGEX.match(stripped)
    if leading_match:
        return normalize_username(leading_match.group(1))

    if _BARE_HANDLE_REGEX.match(stripped):
        return normalize_username(stripped)

    return None


def is_valid_tag(tag: str) -> bool:
    """Tags are 1..50 characters after trimming."""
    return MIN_TAG_LENGTH <= len(tag.strip()) <= MAX_TAG_LENGTH


def _dedupe_tags(candidates: list[str]) -> list[str]:
    tags: list[str] = []
    for candidate in candidates:
        tag = candidate.strip().lower()
        if not tag or not is_valid_tag(tag) or tag in tags:
            continue
        tags.append(tag)
        if len(tags) == MAX_TAGS:
            break
    return tags


def parse_tags(tags_input: str | None) -> list[str]:
    """Split a comma list into at most 10 unique lowercase tags, first occurrence wins."""
    if not tags_input or not isinstance(tags_input, str):
        return []
    return _dedupe_tags(tags_input.split(","))


def normalize_tag_list(tags: str | list[str] | None) -> list[str]:
    """Accept either a comma string or a list of tags (note endpoint payloads)."""
    if tags is None:
        return []
    if isinstance(tags, str):
        return parse_tags(tags)
    return _dedupe_tags([tag for tag in tags if isinstance(tag, str)])


def normalize_tag(raw_tag: str | None) -> str | None:
    """Normalize a tag taken from a URL path segment; None when invalid."""
    if not raw_tag:
        return None
    try:
        decoded = unquote(raw_tag, errors="strict")
    except UnicodeDecodeError:
        return None
    normalized = decoded.strip().lower()
    return normalized if is_valid_tag(normalized) else None
