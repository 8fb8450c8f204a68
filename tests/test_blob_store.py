"""Unit tests for BlobStore class."""

import io
from unittest.mock import patch

import pytest

from processing.progress_service import ProgressStatus, TransferProgressTracker
from storage.blob_store import BlobStore, BlobStoreError, BlobTooLargeError, BlobNotFoundError


class TestBlobStore:
    """Test cases for BlobStore class."""

    @pytest.fixture
    def blob_store(self, temp_dir):
        return BlobStore(base_storage_path=str(temp_dir / "blobs"), public_base_url="/files/")

    def test_init_creates_directory(self, temp_dir):
        store = BlobStore(base_storage_path=str(temp_dir / "nested" / "blobs"))
        assert store.base_storage_path.is_dir()
        assert store.public_base_url == "/files"

    def test_put_text(self, blob_store):
        blob = blob_store.put("weekly-sync-transcription.txt", "Hello team")

        assert blob.name.startswith("weekly-sync-transcription-")
        assert blob.name.endswith(".txt")
        assert blob.url == f"/files/{blob.name}"
        assert blob.path.read_text(encoding="utf-8") == "Hello team"
        assert blob.size == len("Hello team")

    def test_same_name_never_overwrites(self, blob_store):
        first = blob_store.put("notes.txt", b"one")
        second = blob_store.put("notes.txt", b"two")

        assert first.name != second.name
        assert first.path.read_bytes() == b"one"
        assert second.path.read_bytes() == b"two"

    def test_unsafe_names_are_sanitised(self, blob_store):
        blob = blob_store.put("../../etc/My Meeting (final).MP4", b"data")

        assert "/" not in blob.name
        assert ".." not in blob.name
        assert blob.name.startswith("My-Meeting-final-")
        assert blob.name.endswith(".mp4")
        assert blob.path.parent == blob_store.base_storage_path

    def test_put_fileobj_streams(self, blob_store):
        payload = b"x" * (3 * 1024 * 1024 + 17)
        tracker = TransferProgressTracker("upload", total_bytes=len(payload))

        blob = blob_store.put_fileobj("meeting.mp4", io.BytesIO(payload), tracker=tracker)

        assert blob.size == len(payload)
        assert blob.path.read_bytes() == payload
        metrics = tracker.get_metrics()
        assert metrics.status == ProgressStatus.COMPLETED
        assert metrics.transferred_bytes == len(payload)
        assert not list(blob_store.base_storage_path.glob("*.part"))

    def test_put_fileobj_too_large(self, blob_store):
        tracker = TransferProgressTracker("upload", total_bytes=0)

        with pytest.raises(BlobTooLargeError):
            blob_store.put_fileobj("meeting.mp4", io.BytesIO(b"x" * 2048), max_size=1024,
                                   tracker=tracker)

        assert list(blob_store.base_storage_path.iterdir()) == []
        assert tracker.get_metrics().status == ProgressStatus.FAILED

    def test_put_fileobj_write_failure(self, blob_store):
        class BrokenStream(io.BytesIO):
            def read(self, *args):
                raise OSError("disk on fire")

        with pytest.raises(BlobStoreError, match="Failed to store blob"):
            blob_store.put_fileobj("meeting.mp4", BrokenStream())

        assert list(blob_store.base_storage_path.iterdir()) == []

    def test_put_write_failure(self, blob_store):
        with patch("pathlib.Path.write_bytes", side_effect=OSError("read-only")):
            with pytest.raises(BlobStoreError):
                blob_store.put("notes.txt", "text")

    def test_get_path(self, blob_store):
        blob = blob_store.put("notes.txt", "text")
        assert blob_store.get_path(blob.name) == blob.path

    @pytest.mark.parametrize("name", ["", "../secret", "a/b.txt", "missing.txt", "video.mp4.part"])
    def test_get_path_rejects(self, blob_store, name):
        with pytest.raises(BlobNotFoundError):
            blob_store.get_path(name)

    def test_resolve_url(self, blob_store):
        blob = blob_store.put("notes.txt", "text")

        assert blob_store.resolve_url(blob.url) == blob.path
        assert blob_store.resolve_url("https://cdn.example.com/notes.txt") is None
        assert blob_store.resolve_url("/files/gone.txt") is None

    def test_absolute_urls_with_public_origin(self, temp_dir):
        store = BlobStore(base_storage_path=str(temp_dir / "blobs"), public_base_url="/files",
                          public_origin="https://melink.example.com/")
        blob = store.put("notes.txt", "text")

        assert blob.url == f"https://melink.example.com/files/{blob.name}"
        assert store.resolve_url(blob.url) == blob.path
        assert store.resolve_url(f"/files/{blob.name}") == blob.path
        assert store.resolve_url(f"https://other.example.com/files/{blob.name}") is None

    def test_delete(self, blob_store):
        blob = blob_store.put("notes.txt", "text")

        assert blob_store.delete(blob.name)
        assert not blob.path.exists()
        assert not blob_store.delete(blob.name)

    def test_storage_info(self, blob_store):
        blob_store.put("a.txt", b"12345")
        blob_store.put("b.txt", b"678")
        (blob_store.base_storage_path / "c.mp4.part").write_bytes(b"partial")

        info = blob_store.get_storage_info()

        assert info["blob_count"] == 2
        assert info["total_size_bytes"] == 8
        assert "disk_free_mb" in info

    def test_global_store_issues_urls_under_public_base_url(self):
        import config
        from storage import blob_store as blob_store_module

        with patch.object(blob_store_module, '_blob_store', None):
            store = blob_store_module.get_blob_store()

        assert store._url_for("a.mp4") == f"{config.PUBLIC_BASE_URL}{config.PUBLIC_BLOB_URL}/a.mp4"
