"""Domain ports (interfaces) for the collaborators the engine consumes.

Hey future me - the application services ONLY talk to these interfaces! The SQLAlchemy
store, the filesystem cover storage and the two vision APIs are adapters in
infrastructure/. Tests swap them for in-memory fakes without touching the services.

Ports:
- ICatalogueStore / ICatalogueUnitOfWork: relational store (artists, items, memberships)
- ICoverStorage: local cover image files
- IVisionProvider: image in, structured guess out
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from sidea.domain.entities import MembershipStatus, OwnedItem, VisionResult


class ICatalogueUnitOfWork(ABC):
    """Operations that run inside ONE store transaction.

    The add flow is artist lookup-or-create → item lookup-or-create → membership
    insert (→ optional barcode mapping). Everything commits together or not at all.
    """

    @abstractmethod
    async def find_artist_by_name(self, name: str) -> int | None:
        """Return artist id matching the normalized name, if any."""
        ...

    @abstractmethod
    async def create_artist(self, name: str) -> int:
        """Insert an artist and return its id."""
        ...

    @abstractmethod
    async def find_item_by_artist_and_title(
        self, artist_id: int, title: str
    ) -> int | None:
        """Return item id for (artist, normalized title), if any."""
        ...

    @abstractmethod
    async def create_item(
        self,
        artist_id: int,
        title: str,
        year: int | None = None,
        cover_image_url: str | None = None,
        external_id: str | None = None,
    ) -> int:
        """Insert an item and return its id."""
        ...

    @abstractmethod
    async def insert_membership(
        self, item_id: int, status: MembershipStatus = MembershipStatus.COLLECTION
    ) -> None:
        """Insert the membership row (unique on item id).

        Raises:
            DuplicateEntityError: If the item is already catalogued
        """
        ...

    @abstractmethod
    async def add_barcode(self, barcode: str, item_id: int) -> None:
        """Map a barcode to an item (no-op when the barcode is already mapped)."""
        ...


class ICatalogueStore(ABC):
    """Relational store of owned items."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[ICatalogueUnitOfWork]:
        """Open a transactional unit of work (commit on exit, rollback on error)."""
        ...

    @abstractmethod
    async def get_item(self, item_id: int) -> OwnedItem | None:
        """Load a catalogued item (None if missing or not in any membership)."""
        ...

    @abstractmethod
    async def search_owned(self, query: str, limit: int = 20) -> list[OwnedItem]:
        """Substring/fuzzy search over the user's own catalogue."""
        ...

    @abstractmethod
    async def find_by_barcode(self, barcode: str) -> OwnedItem | None:
        """Find the item a barcode was mapped to."""
        ...

    @abstractmethod
    async def list_items(
        self, status: MembershipStatus | None = None
    ) -> list[OwnedItem]:
        """List catalogued items, newest first."""
        ...

    @abstractmethod
    async def update_item_artwork(
        self, item_id: int, provider_image_id: str, image_url: str
    ) -> None:
        """Persist the open-metadata id + image URL and mark artwork attempted."""
        ...

    @abstractmethod
    async def mark_artwork_attempted(
        self, item_id: int, provider_image_id: str | None = None
    ) -> None:
        """Mark artwork resolution as attempted (optionally storing the provider id)."""
        ...

    @abstractmethod
    async def set_local_cover(
        self, item_id: int, filename: str, image_url: str | None = None
    ) -> None:
        """Store the locally cached cover filename (and optionally its source URL).

        Also marks artwork as attempted so a refresh never overwrites a chosen cover.
        """
        ...

    @abstractmethod
    async def set_status(self, item_id: int, status: MembershipStatus) -> bool:
        """Move an item between collection and wishlist. False if not catalogued."""
        ...

    @abstractmethod
    async def update_notes(self, item_id: int, notes: str | None) -> bool:
        """Set free-text notes on the membership. False if not catalogued."""
        ...

    @abstractmethod
    async def delete_membership(self, item_id: int) -> bool:
        """Remove an item from the catalogue. False if it wasn't catalogued."""
        ...


class ICoverStorage(ABC):
    """Local storage for cached cover images."""

    @abstractmethod
    async def save(self, data: bytes, item_id: int) -> str:
        """Persist image bytes and return the stored filename."""
        ...

    @abstractmethod
    async def exists(self, filename: str) -> bool:
        """Check whether a stored file is still there."""
        ...

    @abstractmethod
    async def read(self, filename: str) -> bytes:
        """Read stored image bytes."""
        ...

    @abstractmethod
    def mime_type(self, filename: str) -> str:
        """MIME type derived from the stored filename."""
        ...

    @abstractmethod
    async def delete(self, filename: str) -> None:
        """Delete a stored file (missing files are ignored)."""
        ...


@dataclass(frozen=True)
class PreparedImage:
    """An image ready for submission to a vision provider (already downscaled)."""

    data: bytes
    media_type: str = "image/jpeg"


class IVisionProvider(ABC):
    """One vision-extraction backend.

    Hey future me - the closed set is OpenAI + Anthropic, picked by config at
    construction time. The resolver never inspects concrete types!
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name ("openai", "anthropic")."""
        ...

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """True when credentials are configured."""
        ...

    @abstractmethod
    async def extract(self, image: PreparedImage) -> VisionResult:
        """Identify artist/album/year with a 0-100 confidence.

        Raises:
            ProviderParseError: Response had no parseable structured answer
            ExternalServiceError: Transport or API failure
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release HTTP connections (no-op by default)."""
        return None


__all__ = [
    "ICatalogueStore",
    "ICatalogueUnitOfWork",
    "ICoverStorage",
    "IVisionProvider",
    "PreparedImage",
]
