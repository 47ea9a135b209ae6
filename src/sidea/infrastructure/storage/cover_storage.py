"""Local filesystem storage for cached cover images."""

import asyncio
import hashlib
import logging
from pathlib import Path

from sidea.domain.ports import ICoverStorage

logger = logging.getLogger(__name__)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


def detect_extension(data: bytes) -> str:
    """Guess the file extension from the image's magic bytes (jpg when unknown)."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return "jpg"


# Hey future me, the DB stores only the FILENAME (e.g. "12_a1b2c3d4.jpg"), never the full path.
# The content hash in the name means re-selecting a different cover creates a new file, so
# browsers with a cached old cover don't keep showing it.
class LocalCoverStorage(ICoverStorage):
    """Stores cover images as flat files under one root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def get_absolute_path(self, filename: str) -> Path:
        """Resolve a stored filename inside the storage root.

        Raises:
            ValueError: If the filename tries to escape the root
        """
        path = (self._root / filename).resolve()
        if path.parent != self._root.resolve():
            raise ValueError(f"Invalid cover filename: {filename}")
        return path

    async def save(self, data: bytes, item_id: int) -> str:
        digest = hashlib.md5(data, usedforsecurity=False).hexdigest()[:8]
        filename = f"{item_id}_{digest}.{detect_extension(data)}"
        await asyncio.to_thread(self.get_absolute_path(filename).write_bytes, data)
        logger.debug(f"Stored cover for album {item_id}: {filename} ({len(data)} bytes)")
        return filename

    async def exists(self, filename: str) -> bool:
        try:
            path = self.get_absolute_path(filename)
        except ValueError:
            return False
        return await asyncio.to_thread(path.is_file)

    async def read(self, filename: str) -> bytes:
        return await asyncio.to_thread(self.get_absolute_path(filename).read_bytes)

    def mime_type(self, filename: str) -> str:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        return MIME_TYPES.get(ext, "image/jpeg")

    async def delete(self, filename: str) -> None:
        path = self.get_absolute_path(filename)
        await asyncio.to_thread(path.unlink, True)
        logger.debug(f"Deleted cover file: {filename}")
