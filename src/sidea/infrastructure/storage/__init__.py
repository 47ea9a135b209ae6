"""Local cover image storage."""

from sidea.infrastructure.storage.cover_storage import LocalCoverStorage

__all__ = ["LocalCoverStorage"]
