"""Tests for the image caches."""

from datetime import timedelta

from liveshelf.services.image_cache import (
    CachedImage,
    DiskImageCache,
    MemoryImageCache,
    cache_key,
)
from liveshelf.utils.dates import utcnow


def _image(age=timedelta(0)):
    return CachedImage(content_type="image/jpeg", body=b"jpeg-bytes", stored_at=utcnow() - age)


def test_cache_key_is_stable_and_distinct():
    first = cache_key("http://testserver/img?u=https%3A%2F%2Fa.example%2F1.jpg")
    assert first == cache_key("http://testserver/img?u=https%3A%2F%2Fa.example%2F1.jpg")
    assert first != cache_key("http://testserver/img?u=https%3A%2F%2Fa.example%2F2.jpg")
    assert len(first) == 64


class TestDiskImageCache:
    def test_round_trip(self, tmp_path):
        cache = DiskImageCache(tmp_path / "images", max_age_seconds=60)
        image = _image()

        cache.put("k1", image)
        stored = cache.match("k1")

        assert stored == image
        assert (tmp_path / "images" / "k1.bin").read_bytes() == b"jpeg-bytes"

    def test_miss(self, tmp_path):
        assert DiskImageCache(tmp_path, max_age_seconds=60).match("absent") is None

    def test_expired_entries_are_evicted(self, tmp_path):
        cache = DiskImageCache(tmp_path, max_age_seconds=60)
        cache.put("old", _image(age=timedelta(seconds=61)))

        assert cache.match("old") is None
        assert not (tmp_path / "old.bin").exists()
        assert not (tmp_path / "old.json").exists()

    def test_corrupt_metadata_is_a_miss(self, tmp_path):
        cache = DiskImageCache(tmp_path, max_age_seconds=60)
        cache.put("k1", _image())
        (tmp_path / "k1.json").write_text("{not json", encoding="utf-8")

        assert cache.match("k1") is None

    def test_no_temp_files_left_behind(self, tmp_path):
        cache = DiskImageCache(tmp_path, max_age_seconds=60)
        cache.put("k1", _image())

        assert sorted(path.name for path in tmp_path.iterdir()) == ["k1.bin", "k1.json"]


class TestMemoryImageCache:
    def test_round_trip_and_expiry(self):
        cache = MemoryImageCache(max_age_seconds=60)
        cache.put("fresh", _image())
        cache.put("old", _image(age=timedelta(minutes=2)))

        assert cache.match("fresh") is not None
        assert cache.match("old") is None
        assert "old" not in cache.entries
