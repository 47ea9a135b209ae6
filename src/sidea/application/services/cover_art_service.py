"""Cover art resolution - one durable cover image per catalogued item.

Hey future me - two paths, never mixed:

READ (get_cover_art, called on every UI thumbnail!):
    1. local file that still exists on disk → bytes + MIME
    2. stored URL on coverartarchive.org    → redirect (official art)
    3. any other stored URL (Discogs CDN)   → redirect
    4. nothing                              → EntityNotFoundError
  The read path NEVER calls a provider and never waits for the background pass.

WRITE (populate_artwork, runs in the BackgroundTaskRunner after add_item commits):
    MusicBrainz release search → Cover Art Archive front cover
    - found with image  → store mbid + CAA URL, mark attempted
    - otherwise         → mark attempted (keep the mbid if we got one) and download the
                          catalogue cover URL into local storage as the durable copy
    - MusicBrainz off   → skip the search, just cache the catalogue cover
    - MusicBrainz/CAA error → logged and treated like "not found", the pass never fails
                          on a provider outage

cover_resolution_attempted is the idempotency flag: refresh_cover_art() on an item that was
attempted AND has a URL is a no-op. Manual re-selection (select_cover_art) always wins.
"""

import asyncio
import logging

from sidea.application.workers.background_tasks import BackgroundTaskRunner
from sidea.domain.entities import (
    CoverArtCandidate,
    CoverArtResponse,
    OwnedItem,
    ProviderName,
    RefreshStatus,
)
from sidea.domain.exceptions import EntityNotFoundError, ExternalServiceError, ValidationError
from sidea.domain.ports import ICatalogueStore, ICoverStorage
from sidea.infrastructure.integrations.coverartarchive_client import CoverArtArchiveClient
from sidea.infrastructure.integrations.discogs_client import DiscogsClient
from sidea.infrastructure.integrations.musicbrainz_client import MusicBrainzClient

logger = logging.getLogger(__name__)

COVER_ART_ARCHIVE_HOST = "coverartarchive.org"
# Candidates per source offered for manual re-selection
CANDIDATES_PER_SOURCE = 5


class CoverArtService:
    """Reads, resolves and caches cover art for owned items."""

    def __init__(
        self,
        store: ICatalogueStore,
        storage: ICoverStorage,
        musicbrainz: MusicBrainzClient,
        coverartarchive: CoverArtArchiveClient,
        discogs: DiscogsClient,
        runner: BackgroundTaskRunner,
    ) -> None:
        self._store = store
        self._storage = storage
        self._musicbrainz = musicbrainz
        self._coverartarchive = coverartarchive
        self._discogs = discogs
        self._runner = runner

    @property
    def open_metadata_enabled(self) -> bool:
        """False when MusicBrainz lookups are disabled (catalogue art only)."""
        return self._musicbrainz.is_available

    async def _get_item(self, item_id: int) -> OwnedItem:
        item = await self._store.get_item(item_id)
        if item is None:
            raise EntityNotFoundError("Album", item_id)
        return item

    # -------------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------------

    async def get_cover_art(self, item_id: int) -> CoverArtResponse:
        """Serve the best available cover for an item.

        Raises:
            EntityNotFoundError: Unknown item or no cover art at all
        """
        item = await self._get_item(item_id)

        if item.local_cover_file and await self._storage.exists(item.local_cover_file):
            content = await self._storage.read(item.local_cover_file)
            return CoverArtResponse(
                content=content,
                media_type=self._storage.mime_type(item.local_cover_file),
            )

        # Official CAA art first, then whatever the catalogue gave us. Both are redirects,
        # the distinction only matters for logging.
        if item.cover_image_url:
            if COVER_ART_ARCHIVE_HOST in item.cover_image_url:
                logger.debug(f"Album {item_id}: redirecting to Cover Art Archive")
            else:
                logger.debug(f"Album {item_id}: redirecting to external cover URL")
            return CoverArtResponse(redirect_url=item.cover_image_url)

        raise EntityNotFoundError(
            "Album", item_id, f"No cover art available for album {item_id}"
        )

    # -------------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------------

    def schedule_artwork(self, item_id: int) -> None:
        """Queue the background artwork pass for a freshly added item."""
        self._runner.submit(
            f"cover-art-{item_id}", lambda: self.populate_artwork(item_id)
        )

    async def populate_artwork(self, item_id: int) -> RefreshStatus:
        """Background unit of work: resolve and persist durable artwork."""
        item = await self._store.get_item(item_id)
        if item is None:
            # Removed before the background pass got its turn
            logger.debug(f"Album {item_id} vanished before artwork pass, skipping")
            return RefreshStatus.NOT_FOUND
        status = await self._resolve(item)
        logger.info(f"Artwork pass for album {item_id}: {status.value}")
        return status

    async def refresh_cover_art(self, item_id: int) -> RefreshStatus:
        """Manually re-run artwork resolution (no-op when already resolved).

        Raises:
            EntityNotFoundError: Unknown item
        """
        item = await self._get_item(item_id)
        if item.cover_resolution_attempted and item.cover_image_url:
            return RefreshStatus.ALREADY_CACHED
        return await self._resolve(item)

    async def _resolve(self, item: OwnedItem) -> RefreshStatus:
        if not self._musicbrainz.is_available:
            cached = await self.cache_fallback_image(item)
            await self._store.mark_artwork_attempted(item.id)
            return RefreshStatus.FALLBACK_CACHED if cached else RefreshStatus.NOT_FOUND

        mbid = item.musicbrainz_id
        cover_url = None
        try:
            if not mbid:
                release = await self._musicbrainz.search_release(item.artist_name, item.title)
                mbid = release.external_id if release else None
            if mbid:
                cover_url = await self._coverartarchive.get_front_cover_url(mbid)
        except ExternalServiceError as e:
            # Outage counts as "no official art", the catalogue cover still gets cached
            logger.warning(f"Official cover lookup failed for album {item.id}: {e}")

        if mbid and cover_url:
            await self._store.update_item_artwork(item.id, mbid, cover_url)
            return RefreshStatus.UPDATED

        await self._store.mark_artwork_attempted(item.id, mbid)
        if await self.cache_fallback_image(item):
            return RefreshStatus.FALLBACK_CACHED
        return RefreshStatus.NOT_FOUND

    # Listen up, this never raises for provider/storage trouble - a missing durable copy is
    # not worth failing the artwork pass over. The redirect to the catalogue URL still works.
    async def cache_fallback_image(self, item: OwnedItem) -> bool:
        """Download the item's catalogue cover into local storage.

        Returns:
            True if a local copy was stored
        """
        if not item.cover_image_url or item.local_cover_file:
            return False
        try:
            data = await self._coverartarchive.download_image(item.cover_image_url)
            filename = await self._storage.save(data, item.id)
        except (ExternalServiceError, OSError) as e:
            logger.warning(f"Failed to cache fallback cover art for album {item.id}: {e}")
            return False
        await self._store.set_local_cover(item.id, filename)
        return True

    # -------------------------------------------------------------------------
    # Manual re-selection
    # -------------------------------------------------------------------------

    async def find_cover_art_candidates(self, item_id: int) -> list[CoverArtCandidate]:
        """Offer alternative covers: MusicBrainz/CAA first, then Discogs.

        Raises:
            EntityNotFoundError: Unknown item
        """
        item = await self._get_item(item_id)
        logger.debug(f"Searching cover art for: {item.artist_name} - {item.title}")

        mb_candidates, discogs_candidates = await asyncio.gather(
            self._musicbrainz_candidates(item),
            self._discogs_candidates(item),
        )
        return [*mb_candidates, *discogs_candidates]

    async def _musicbrainz_candidates(self, item: OwnedItem) -> list[CoverArtCandidate]:
        if not self._musicbrainz.is_available:
            return []
        try:
            releases = await self._musicbrainz.search_releases(
                item.artist_name, item.title, limit=CANDIDATES_PER_SOURCE
            )
            urls = await asyncio.gather(
                *(self._coverartarchive.get_front_cover_url(r.external_id) for r in releases)
            )
        except ExternalServiceError as e:
            logger.warning(f"MusicBrainz cover search failed for album {item.id}: {e}")
            return []

        return [
            CoverArtCandidate(
                source=ProviderName.MUSICBRAINZ.value,
                url=url,
                title=release.display_title,
                external_id=release.external_id,
                year=release.year,
            )
            for release, url in zip(releases, urls, strict=True)
            if url
        ]

    async def _discogs_candidates(self, item: OwnedItem) -> list[CoverArtCandidate]:
        if not self._discogs.is_available:
            return []
        try:
            results = await self._discogs.search_by_text(
                f"{item.artist_name} - {item.title}", limit=CANDIDATES_PER_SOURCE
            )
        except ExternalServiceError as e:
            logger.warning(f"Discogs cover search failed for album {item.id}: {e}")
            return []

        return [
            CoverArtCandidate(
                source=ProviderName.DISCOGS.value,
                url=r.cover_url,
                title=r.display_title,
                external_id=r.external_id,
                year=r.year,
            )
            for r in results
            if r.cover_url
        ][:CANDIDATES_PER_SOURCE]

    async def select_cover_art(self, item_id: int, url: str) -> OwnedItem:
        """Download a chosen image, store it locally and make it the item's cover.

        Raises:
            ValidationError: URL missing
            EntityNotFoundError: Unknown item
            ExternalServiceError: Download failed (nothing is changed then)
        """
        if not url or not url.strip():
            raise ValidationError("Image URL is required")
        url = url.strip()
        item = await self._get_item(item_id)

        data = await self._coverartarchive.download_image(url)
        filename = await self._storage.save(data, item.id)
        await self._store.set_local_cover(item.id, filename, image_url=url)

        if item.local_cover_file and item.local_cover_file != filename:
            await self._storage.delete(item.local_cover_file)

        return await self._get_item(item_id)
