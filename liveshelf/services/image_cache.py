"""Shared cache for proxied images.

Entries are keyed by the inbound request URL and expire after
``image_cache_max_age_seconds``. The disk cache is the default; tests swap in
``MemoryImageCache`` through the ``get_image_cache`` dependency.
"""

import hashlib
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from liveshelf.core.logging import get_logger
from liveshelf.core.settings import get_settings
from liveshelf.utils.dates import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class CachedImage:
    content_type: str
    body: bytes
    stored_at: datetime


class ImageCache(Protocol):
    def match(self, key: str) -> CachedImage | None: ...

    def put(self, key: str, image: CachedImage) -> None: ...


def cache_key(request_url: str) -> str:
    """Derive a filesystem-safe cache key from the inbound request URL."""
    return hashlib.sha256(request_url.encode("utf-8")).hexdigest()


def _is_expired(image: CachedImage, max_age: timedelta, now: datetime | None = None) -> bool:
    return (now or utcnow()) - image.stored_at > max_age


class MemoryImageCache:
    """Process-local cache; suitable for tests and single-worker development."""

    def __init__(self, max_age_seconds: int | None = None):
        seconds = max_age_seconds or get_settings().image_cache_max_age_seconds
        self.max_age = timedelta(seconds=seconds)
        self.entries: dict[str, CachedImage] = {}

    def match(self, key: str) -> CachedImage | None:
        image = self.entries.get(key)
        if image is None:
            return None
        if _is_expired(image, self.max_age):
            self.entries.pop(key, None)
            return None
        return image

    def put(self, key: str, image: CachedImage) -> None:
        self.entries[key] = image


class DiskImageCache:
    """Stores each entry as ``<key>.bin`` plus a ``<key>.json`` metadata sidecar."""

    def __init__(self, base_dir: Path, max_age_seconds: int):
        self.base_dir = base_dir
        self.max_age = timedelta(seconds=max_age_seconds)

    def _paths(self, key: str) -> tuple[Path, Path]:
        return self.base_dir / f"{key}.bin", self.base_dir / f"{key}.json"

    def match(self, key: str) -> CachedImage | None:
        body_path, meta_path = self._paths(key)
        if not body_path.exists() or not meta_path.exists():
            return None
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            image = CachedImage(
                content_type=meta["content_type"],
                body=body_path.read_bytes(),
                stored_at=datetime.fromisoformat(meta["stored_at"]),
            )
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Unreadable image cache entry %s: %s", key, e)
            return None

        if _is_expired(image, self.max_age):
            body_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)
            return None
        return image

    def put(self, key: str, image: CachedImage) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        body_path, meta_path = self._paths(key)
        meta = {"content_type": image.content_type, "stored_at": image.stored_at.isoformat()}
        self._write_atomic(body_path, image.body)
        self._write_atomic(meta_path, json.dumps(meta).encode("utf-8"))

    def _write_atomic(self, path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


_image_cache: ImageCache | None = None


def get_image_cache() -> ImageCache:
    """FastAPI dependency returning the shared image cache."""
    global _image_cache
    if _image_cache is None:
        settings = get_settings()
        _image_cache = DiskImageCache(
            settings.image_cache_dir.resolve(), settings.image_cache_max_age_seconds
        )
    return _image_cache
