"""Discogs HTTP client - the catalogue provider.

Hey future me - Discogs is where the barcodes and the marketplace-grade release data live.
Auth is a personal access token sent as "Authorization: Discogs token=<token>" (no OAuth
dance needed for read-only database search). 60 authenticated requests per minute, the
shared RequestThrottle keeps us under it.

GOTCHA: /database/search returns "Artist - Title" glued together in the title field, while
/releases/{id} returns separate artists[]. parse_release() handles both shapes.

No token → is_available is False and every method returns []/None WITHOUT touching the
network. Search call sites treat Discogs as optional.
"""

import logging
from typing import Any

import httpx

from sidea.application.cache import CATALOGUE_TTL, ProviderCache, make_key
from sidea.config.settings import DiscogsSettings
from sidea.domain.entities import ArtistMatch, Candidate, ProviderName
from sidea.domain.value_objects import parse_year, split_combined_title
from sidea.infrastructure.integrations.base_client import ProviderHttpClient
from sidea.infrastructure.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Album"


# Listen up, the explicit artist field (artist releases) or artists[0].name (release details)
# ALWAYS wins over whatever we split out of the combined title. The split is only a guess.
def parse_release(release: dict[str, Any]) -> Candidate:
    """Convert a Discogs search result / release document into a Candidate."""
    artist, title = split_combined_title(release.get("title"))

    if release.get("artist"):
        artist = release["artist"]
    else:
        artists = release.get("artists") or []
        if artists and artists[0].get("name"):
            artist = artists[0]["name"]

    cover_url = release.get("cover_image")
    if not cover_url:
        images = release.get("images") or []
        if images and images[0].get("uri"):
            cover_url = images[0]["uri"]

    return Candidate(
        display_artist=artist or UNKNOWN_ARTIST,
        display_title=title or UNKNOWN_TITLE,
        year=parse_year(release.get("year")),
        cover_url=cover_url or None,
        external_id=str(release.get("id", "")),
        provider_name=ProviderName.DISCOGS.value,
    )


class DiscogsClient(ProviderHttpClient):
    """HTTP client for Discogs database operations."""

    PROVIDER = ProviderName.DISCOGS.value

    def __init__(
        self,
        settings: DiscogsSettings,
        throttle: RequestThrottle,
        cache: ProviderCache,
        user_agent: str,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Discogs client.

        Args:
            settings: Discogs configuration (token, base URL)
            throttle: The Discogs request throttle (one per process!)
            cache: Shared provider result cache
            user_agent: Application User-Agent string
            timeout: Outbound request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if settings.token:
            headers["Authorization"] = f"Discogs token={settings.token}"
        super().__init__(
            base_url=settings.base_url,
            throttle=throttle,
            cache=cache,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self.settings = settings

    @property
    def is_available(self) -> bool:
        """True when a Discogs token is configured."""
        return self.settings.is_configured

    async def search_by_text(self, query: str, limit: int = 20) -> list[Candidate]:
        """
        Free-text release search.

        Args:
            query: Search text ("pink floyd the wall")
            limit: Maximum number of results

        Returns:
            Candidates in Discogs relevance order (may be empty)

        Raises:
            ExternalServiceError: If Discogs fails
        """
        query = query.strip()
        if not self.is_available or not query:
            return []

        async def load() -> list[Candidate]:
            data = await self._get_json(
                "/database/search",
                params={"q": query, "type": "release", "per_page": limit},
            )
            results = (data or {}).get("results") or []
            return [parse_release(r) for r in results[:limit]]

        return await self._cache.cached(
            make_key(self.PROVIDER, "search", query, limit), CATALOGUE_TTL, load
        )

    # Yo, barcode search usually returns several pressings with the same barcode. We take the
    # first one, Discogs sorts by relevance and the first is almost always the canonical
    # release. None is NOT cached, so a barcode Discogs learns tomorrow is found tomorrow.
    async def search_by_barcode(self, code: str) -> Candidate | None:
        """
        Look up a release by barcode (UPC/EAN).

        Returns:
            Best matching Candidate or None if Discogs doesn't know the barcode
        """
        code = code.strip()
        if not self.is_available or not code:
            return None

        async def load() -> Candidate | None:
            data = await self._get_json(
                "/database/search",
                params={"barcode": code, "type": "release", "per_page": 5},
            )
            results = (data or {}).get("results") or []
            if not results:
                return None
            return parse_release(results[0])

        return await self._cache.cached(
            make_key(self.PROVIDER, "barcode", code), CATALOGUE_TTL, load
        )

    async def search_artist(self, name: str) -> ArtistMatch | None:
        """Find the best matching Discogs artist for a name."""
        name = name.strip()
        if not self.is_available or not name:
            return None

        async def load() -> ArtistMatch | None:
            data = await self._get_json(
                "/database/search",
                params={"q": name, "type": "artist", "per_page": 1},
            )
            results = (data or {}).get("results") or []
            if not results or not results[0].get("id"):
                return None
            top = results[0]
            return ArtistMatch(
                artist_id=str(top["id"]), artist_name=top.get("title") or name
            )

        return await self._cache.cached(
            make_key(self.PROVIDER, "artist", name), CATALOGUE_TTL, load
        )

    # Hey future me, /artists/{id}/releases mixes "Main" releases with appearances,
    # remixes, producer credits etc. Only role=Main is the artist's own discography.
    # Entries there carry an explicit "artist" field, but not always - artist_name fills
    # the gap so we don't end up with "Unknown Artist" for half the list.
    async def list_artist_releases(
        self, artist_id: str, limit: int = 20, artist_name: str | None = None
    ) -> list[Candidate]:
        """
        List an artist's own releases, newest first.

        Args:
            artist_id: Discogs artist id
            limit: Maximum number of releases
            artist_name: Name to use when an entry has no artist field

        Returns:
            Candidates, newest first
        """
        if not self.is_available or not artist_id:
            return []

        async def load() -> list[Candidate]:
            data = await self._get_json(
                f"/artists/{artist_id}/releases",
                params={"sort": "year", "sort_order": "desc", "per_page": limit},
            )
            candidates: list[Candidate] = []
            for entry in (data or {}).get("releases") or []:
                if entry.get("role", "Main") != "Main":
                    continue
                if not entry.get("artist") and artist_name:
                    entry = {**entry, "artist": artist_name}
                candidate = parse_release(entry)
                if not candidate.cover_url and entry.get("thumb"):
                    candidate.cover_url = entry["thumb"]
                candidates.append(candidate)
                if len(candidates) >= limit:
                    break
            return candidates

        return await self._cache.cached(
            make_key(self.PROVIDER, "artist-releases", artist_id, limit),
            CATALOGUE_TTL,
            load,
        )

    async def get_release(self, release_id: str) -> Candidate | None:
        """
        Fetch full release details.

        Returns:
            Candidate or None if the release doesn't exist
        """
        release_id = str(release_id).strip()
        if not self.is_available or not release_id:
            return None

        async def load() -> Candidate | None:
            data = await self._get_json(f"/releases/{release_id}", not_found_ok=True)
            if data is None:
                return None
            return parse_release(data)

        return await self._cache.cached(
            make_key(self.PROVIDER, "release", release_id), CATALOGUE_TTL, load
        )
