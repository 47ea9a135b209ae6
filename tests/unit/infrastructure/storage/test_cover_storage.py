"""Tests for local cover file storage."""

from pathlib import Path

import pytest

from conftest import make_png
from sidea.infrastructure.storage import LocalCoverStorage
from sidea.infrastructure.storage.cover_storage import detect_extension


class TestDetectExtension:
    """Test magic-byte sniffing."""

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"\x89PNG\r\n\x1a\n....", "png"),
            (b"GIF89a....", "gif"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "webp"),
            (b"\xff\xd8\xff\xe0....", "jpg"),
            (b"whatever", "jpg"),
        ],
    )
    def test_detect(self, data: bytes, expected: str) -> None:
        """Test known formats and the jpg default."""
        assert detect_extension(data) == expected


class TestLocalCoverStorage:
    """Test save/read/delete inside the storage root."""

    async def test_save_and_read(self, storage: LocalCoverStorage) -> None:
        """Test the filename carries item id, hash and extension."""
        data = make_png()

        filename = await storage.save(data, 42)

        assert filename.startswith("42_")
        assert filename.endswith(".png")
        assert await storage.exists(filename) is True
        assert await storage.read(filename) == data
        assert storage.mime_type(filename) == "image/png"

    async def test_different_content_different_file(self, storage: LocalCoverStorage) -> None:
        """Test re-selecting another image never overwrites the old name."""
        first = await storage.save(make_png(color="red"), 7)
        second = await storage.save(make_png(color="blue"), 7)
        assert first != second

    async def test_delete_is_idempotent(self, storage: LocalCoverStorage) -> None:
        """Test deleting twice is fine."""
        filename = await storage.save(b"\xff\xd8\xffjpeg", 1)

        await storage.delete(filename)
        await storage.delete(filename)

        assert await storage.exists(filename) is False

    async def test_path_escape_rejected(self, storage: LocalCoverStorage) -> None:
        """Test names pointing outside the root are refused."""
        with pytest.raises(ValueError):
            storage.get_absolute_path("../secrets.txt")
        assert await storage.exists("../secrets.txt") is False

    def test_root_created(self, tmp_path: Path) -> None:
        """Test the storage directory is created on init."""
        root = tmp_path / "nested" / "covers"
        LocalCoverStorage(root)
        assert root.is_dir()

    def test_mime_type_default(self, storage: LocalCoverStorage) -> None:
        """Test unknown extensions fall back to JPEG."""
        assert storage.mime_type("1_abc.webp") == "image/webp"
        assert storage.mime_type("1_abc") == "image/jpeg"
