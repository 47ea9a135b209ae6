"""Catalogue search - merge and dedup candidates from providers and the own collection.

Hey future me - this is where "search for Pink Floyd" turns into ONE list:

1. Own catalogue first (store.search_owned) → two lookup sets, collection and wishlist,
   holding normalized "artist::title" keys plus "discogs:<id>" keys.
2. Artist-level lookup per provider, never a blind text search first. A query that IS an
   artist name should show that artist's albums, newest first, not 20 random compilations.
   - MusicBrainz: search_artist → list_release_groups (Album primary type, newest first)
   - Discogs ONLY when MusicBrainz gave us fewer than fallback_threshold results:
     search_artist → list_artist_releases, plus a free-text search_by_text, deduped
     within Discogs (artist releases win over text hits)
3. Merge: MusicBrainz first, then Discogs. First seen wins, by normalized key AND by
   external id.
4. Tag in_collection / in_wishlist by key and by discogs id.
5. Truncate to result_cap.

Provider failures in step 2 just mean that provider contributes nothing. The owned list is
ALWAYS returned. Cached provider results are shared objects - we only ever hand out copies
(dataclasses.replace), never mutate what the cache holds!
"""

import asyncio
import logging
from dataclasses import replace

from sidea.config.settings import SearchSettings
from sidea.domain.entities import (
    BarcodeMatch,
    Candidate,
    MembershipStatus,
    OwnedItem,
    ProviderName,
    SearchResults,
)
from sidea.domain.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    ProviderUnavailableError,
    ValidationError,
)
from sidea.domain.ports import ICatalogueStore
from sidea.domain.value_objects import external_key, release_key
from sidea.infrastructure.integrations.discogs_client import DiscogsClient
from sidea.infrastructure.integrations.musicbrainz_client import MusicBrainzClient

logger = logging.getLogger(__name__)


def candidate_from_item(item: OwnedItem) -> Candidate:
    """Describe an owned item as a Candidate (e.g. for a local barcode hit)."""
    if item.external_id:
        external_id, provider = item.external_id, ProviderName.DISCOGS.value
    else:
        external_id, provider = str(item.id), ProviderName.LOCAL.value
    return Candidate(
        display_artist=item.artist_name,
        display_title=item.title,
        year=item.year,
        cover_url=item.cover_image_url,
        external_id=external_id,
        provider_name=provider,
        in_collection=item.membership_status == MembershipStatus.COLLECTION,
        in_wishlist=item.membership_status == MembershipStatus.WISHLIST,
    )


class OwnershipLookup:
    """Collection/wishlist lookup sets built from the owned search hits."""

    def __init__(self, owned: list[OwnedItem]) -> None:
        self.collection: set[str] = set()
        self.wishlist: set[str] = set()
        for item in owned:
            target = (
                self.wishlist
                if item.membership_status == MembershipStatus.WISHLIST
                else self.collection
            )
            target.add(release_key(item.artist_name, item.title))
            discogs_key = external_key(ProviderName.DISCOGS.value, item.external_id)
            if discogs_key:
                target.add(discogs_key)

    def tag(self, candidate: Candidate) -> Candidate:
        """Return a copy of candidate with in_collection / in_wishlist set."""
        keys = {release_key(candidate.display_artist, candidate.display_title)}
        discogs_key = external_key(ProviderName.DISCOGS.value, candidate.discogs_id)
        if discogs_key:
            keys.add(discogs_key)
        return replace(
            candidate,
            in_collection=not keys.isdisjoint(self.collection),
            in_wishlist=not keys.isdisjoint(self.wishlist),
        )


def merge_candidates(
    *result_lists: list[Candidate],
    lookup: OwnershipLookup | None = None,
    cap: int | None = None,
) -> list[Candidate]:
    """Merge candidate lists in priority order, first seen wins.

    A candidate is a duplicate when its normalized artist::title key OR its
    provider:external_id key was already seen.
    """
    lookup = lookup or OwnershipLookup([])
    seen: set[str] = set()
    merged: list[Candidate] = []
    for results in result_lists:
        for candidate in results:
            key = release_key(candidate.display_artist, candidate.display_title)
            id_key = external_key(candidate.provider_name, candidate.external_id)
            if key in seen or (id_key and id_key in seen):
                continue
            seen.add(key)
            if id_key:
                seen.add(id_key)
            merged.append(lookup.tag(candidate))
    if cap is not None:
        return merged[:cap]
    return merged


class CatalogueSearchService:
    """Search across the own catalogue, MusicBrainz and Discogs."""

    def __init__(
        self,
        store: ICatalogueStore,
        musicbrainz: MusicBrainzClient,
        discogs: DiscogsClient,
        settings: SearchSettings | None = None,
    ) -> None:
        self._store = store
        self._musicbrainz = musicbrainz
        self._discogs = discogs
        self.settings = settings or SearchSettings()

    async def search_catalogue(self, query: str) -> SearchResults:
        """Search owned items and external providers.

        Args:
            query: Free text, usually an artist name or "artist album"

        Returns:
            SearchResults with owned items and merged external candidates

        Raises:
            ValidationError: Query is blank
        """
        if not query or not query.strip():
            raise ValidationError("Search query is required")
        query = query.strip()

        owned = await self._store.search_owned(query, limit=self.settings.owned_limit)
        lookup = OwnershipLookup(owned)

        mb_results = await self._musicbrainz_artist_albums(query)

        discogs_results: list[Candidate] = []
        if len(mb_results) < self.settings.fallback_threshold:
            discogs_results = await self._discogs_results(query)

        external = merge_candidates(
            mb_results,
            discogs_results,
            lookup=lookup,
            cap=self.settings.result_cap,
        )
        logger.debug(
            f"Search '{query}': {len(owned)} owned, {len(mb_results)} musicbrainz, "
            f"{len(discogs_results)} discogs, {len(external)} merged"
        )
        return SearchResults(owned=owned, external=external)

    async def _musicbrainz_artist_albums(self, query: str) -> list[Candidate]:
        if not self._musicbrainz.is_available:
            return []
        try:
            artist = await self._musicbrainz.search_artist(query)
            if artist is None:
                return []
            logger.debug(f"Found MusicBrainz artist: {artist.artist_name} ({artist.artist_id})")
            groups = await self._musicbrainz.list_release_groups(
                artist.artist_id,
                artist.artist_name,
                limit=self.settings.artist_release_limit,
            )
        except ExternalServiceError as e:
            logger.warning(f"MusicBrainz search failed for '{query}': {e}")
            return []
        return [replace(g, is_artist_exact_match=True) for g in groups]

    async def _discogs_artist_releases(self, query: str) -> list[Candidate]:
        artist = await self._discogs.search_artist(query)
        if artist is None:
            return []
        logger.debug(f"Found Discogs artist: {artist.artist_name} ({artist.artist_id})")
        releases = await self._discogs.list_artist_releases(
            artist.artist_id,
            limit=self.settings.artist_release_limit,
            artist_name=artist.artist_name,
        )
        return [replace(r, is_artist_exact_match=True) for r in releases]

    # Hey future me, the two Discogs branches are independent so they're gathered. The
    # throttle still serializes the actual requests, gather only saves us the idle wait.
    async def _discogs_results(self, query: str) -> list[Candidate]:
        if not self._discogs.is_available:
            return []

        artist_releases, general = await asyncio.gather(
            self._discogs_artist_releases(query),
            self._discogs.search_by_text(query, limit=self.settings.text_search_limit),
            return_exceptions=True,
        )
        if isinstance(artist_releases, BaseException):
            self._absorb_provider_failure("Discogs artist lookup", query, artist_releases)
            artist_releases = []
        if isinstance(general, BaseException):
            self._absorb_provider_failure("Discogs text search", query, general)
            general = []

        return merge_candidates(artist_releases, general)

    @staticmethod
    def _absorb_provider_failure(what: str, query: str, error: BaseException) -> None:
        if not isinstance(error, ExternalServiceError):
            raise error
        logger.warning(f"{what} failed for '{query}': {error}")

    async def resolve_barcode(self, code: str) -> BarcodeMatch:
        """Resolve a barcode, own catalogue first, then Discogs.

        Raises:
            ValidationError: Barcode is blank
            EntityNotFoundError: Nobody knows this barcode
            ExternalServiceError: Discogs failed
        """
        if not code or not code.strip():
            raise ValidationError("Barcode is required")
        code = code.strip()

        item = await self._store.find_by_barcode(code)
        if item is not None:
            return BarcodeMatch(
                candidate=candidate_from_item(item), source=ProviderName.LOCAL.value
            )

        candidate = await self._discogs.search_by_barcode(code)
        if candidate is None:
            raise EntityNotFoundError("Barcode", code, "No album found for this barcode")
        return BarcodeMatch(candidate=replace(candidate), source=ProviderName.DISCOGS.value)

    async def get_release(self, release_id: str) -> Candidate:
        """Full release details from the catalogue provider.

        Raises:
            ProviderUnavailableError: Discogs is not configured
            EntityNotFoundError: Unknown release id
        """
        if not self._discogs.is_available:
            raise ProviderUnavailableError(
                "Discogs is not configured", provider=ProviderName.DISCOGS.value
            )
        candidate = await self._discogs.get_release(release_id)
        if candidate is None:
            raise EntityNotFoundError("Release", release_id, "Album not found in Discogs")
        return replace(candidate)
