"""Collection service - add, move and remove catalogued records."""

import logging

from sidea.application.services.cover_art_service import CoverArtService
from sidea.domain.entities import MembershipStatus, NewItemRequest, OwnedItem
from sidea.domain.exceptions import EntityNotFoundError, ValidationError
from sidea.domain.ports import ICatalogueStore

logger = logging.getLogger(__name__)


class CollectionService:
    """Manages the user's collection and wishlist."""

    def __init__(self, store: ICatalogueStore, cover_art: CoverArtService) -> None:
        """Initialize collection service.

        Args:
            store: Catalogue store
            cover_art: Cover art service (artwork pass after add)
        """
        self._store = store
        self._cover_art = cover_art

    # Hey future me, the add is ONE transaction: artist find-or-create → item find-or-create →
    # membership insert → barcode mapping. The membership insert is where "already owned"
    # surfaces (unique constraint → DuplicateEntityError → 409). When it raises, the
    # transaction rolls back and we NEVER get to the artwork step below.
    #
    # Artwork only starts after COMMIT:
    # - MusicBrainz off + catalogue cover URL → download it right now (synchronously), the
    #   caller gets an item that already has its local cover
    # - otherwise → background artwork pass, the caller doesn't wait for MusicBrainz
    async def add_item(self, request: NewItemRequest) -> OwnedItem:
        """Add a record to the collection or wishlist.

        Raises:
            ValidationError: Artist or title missing
            DuplicateEntityError: Record is already catalogued
        """
        artist = (request.artist or "").strip()
        title = (request.title or "").strip()
        if not artist or not title:
            raise ValidationError("Artist and album are required")

        async with self._store.transaction() as uow:
            artist_id = await uow.find_artist_by_name(artist)
            if artist_id is None:
                artist_id = await uow.create_artist(artist)

            item_id = await uow.find_item_by_artist_and_title(artist_id, title)
            if item_id is None:
                item_id = await uow.create_item(
                    artist_id,
                    title,
                    year=request.year,
                    cover_image_url=request.cover_image_url,
                    external_id=request.external_id,
                )

            await uow.insert_membership(item_id, request.status)

            if request.barcode and request.barcode.strip():
                await uow.add_barcode(request.barcode.strip(), item_id)

        logger.info(f"Added album {item_id} ({artist} - {title}) to {request.status.value}")

        item = await self._require_item(item_id)
        if self._cover_art.open_metadata_enabled:
            self._cover_art.schedule_artwork(item_id)
            return item

        logger.debug(f"MusicBrainz disabled, caching catalogue art now for album {item_id}")
        await self._cover_art.cache_fallback_image(item)
        await self._store.mark_artwork_attempted(item_id)
        return await self._require_item(item_id)

    async def _require_item(self, item_id: int) -> OwnedItem:
        item = await self._store.get_item(item_id)
        if item is None:
            raise EntityNotFoundError("Album", item_id)
        return item

    async def get_item(self, item_id: int) -> OwnedItem:
        """Load a catalogued record.

        Raises:
            EntityNotFoundError: Not catalogued
        """
        return await self._require_item(item_id)

    async def list_items(self, status: MembershipStatus | None = None) -> list[OwnedItem]:
        """List catalogued records, newest first (optionally one status only)."""
        return await self._store.list_items(status)

    async def remove_item(self, item_id: int) -> None:
        """Remove a record from the catalogue.

        Raises:
            EntityNotFoundError: Not catalogued
        """
        if not await self._store.delete_membership(item_id):
            raise EntityNotFoundError("Album", item_id, "Album not in collection")
        logger.info(f"Removed album {item_id} from collection")

    async def set_status(self, item_id: int, status: MembershipStatus) -> OwnedItem:
        """Move a record between collection and wishlist.

        Raises:
            EntityNotFoundError: Not catalogued
        """
        if not await self._store.set_status(item_id, status):
            raise EntityNotFoundError("Album", item_id, "Album not in collection")
        return await self._require_item(item_id)

    async def update_notes(self, item_id: int, notes: str | None) -> OwnedItem:
        """Set free-text notes on a record.

        Raises:
            EntityNotFoundError: Not catalogued
        """
        if not await self._store.update_notes(item_id, notes):
            raise EntityNotFoundError("Album", item_id, "Album not in collection")
        return await self._require_item(item_id)
