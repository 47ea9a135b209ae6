"""MusicBrainz HTTP client - the open metadata provider."""

import logging
from typing import Any

import httpx

from sidea.application.cache import OPEN_METADATA_TTL, ProviderCache, make_key
from sidea.config.settings import MusicBrainzSettings
from sidea.domain.entities import ArtistMatch, Candidate, ProviderName
from sidea.domain.value_objects import parse_year
from sidea.infrastructure.integrations.base_client import ProviderHttpClient
from sidea.infrastructure.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)

COVER_ART_ARCHIVE_URL = "https://coverartarchive.org"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TITLE = "Unknown Album"

# Browse requests cap out at 100 per page
_BROWSE_PAGE_SIZE = 100


def _lucene_phrase(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _credited_artist(entity: dict[str, Any]) -> str | None:
    credits = entity.get("artist-credit") or []
    if credits:
        artist = credits[0].get("artist") or {}
        return artist.get("name") or credits[0].get("name")
    return None


# Hey future me, release-group cover URLs point at CAA's redirect endpoint instead of an actual
# image. We DON'T verify every one with a HEAD request - that would be 20 extra calls per search.
# The UI shows a placeholder when the redirect 404s.
def release_group_cover_url(release_group_id: str, size: int = 250) -> str:
    """CAA front-cover redirect URL for a release group."""
    return f"{COVER_ART_ARCHIVE_URL}/release-group/{release_group_id}/front-{size}"


def parse_release_group(
    group: dict[str, Any], artist_name: str | None = None
) -> Candidate:
    """Convert a release-group document into a Candidate."""
    return Candidate(
        display_artist=artist_name or _credited_artist(group) or UNKNOWN_ARTIST,
        display_title=group.get("title") or UNKNOWN_TITLE,
        year=parse_year(group.get("first-release-date")),
        cover_url=release_group_cover_url(group["id"]),
        external_id=group["id"],
        provider_name=ProviderName.MUSICBRAINZ.value,
        match_confidence=group.get("score"),
    )


def parse_release(release: dict[str, Any]) -> Candidate:
    """Convert a release document into a Candidate (no cover URL yet)."""
    return Candidate(
        display_artist=_credited_artist(release) or UNKNOWN_ARTIST,
        display_title=release.get("title") or UNKNOWN_TITLE,
        year=parse_year(release.get("date")),
        external_id=release["id"],
        provider_name=ProviderName.MUSICBRAINZ.value,
        match_confidence=release.get("score"),
    )


class MusicBrainzClient(ProviderHttpClient):
    """HTTP client for MusicBrainz API operations with rate limiting."""

    PROVIDER = ProviderName.MUSICBRAINZ.value

    # Hey future me, MusicBrainz is STRICT about rate limiting - 1 req/sec, NO EXCEPTIONS!
    # The throttle passed in here MUST be the process-wide MusicBrainz throttle. Creating a
    # second one "just for this client" doubles our rate and gets us IP-banned for hours.
    #
    # Listen, MusicBrainz also REQUIRES a User-Agent with app name, version AND contact info
    # in the "AppName/Version ( contact )" form. Without it they answer 403.
    def __init__(
        self,
        settings: MusicBrainzSettings,
        throttle: RequestThrottle,
        cache: ProviderCache,
        user_agent: str,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize MusicBrainz client.

        Args:
            settings: MusicBrainz configuration settings
            throttle: The MusicBrainz request throttle
            cache: Shared provider result cache
            user_agent: "App/Version ( contact )" User-Agent
            timeout: Outbound request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(
            base_url=settings.base_url,
            throttle=throttle,
            cache=cache,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self.settings = settings

    @property
    def is_available(self) -> bool:
        """False when MusicBrainz lookups are administratively disabled."""
        return self.settings.enabled

    async def search_by_text(self, query: str, limit: int = 20) -> list[Candidate]:
        """
        Free-text release-group search.

        Args:
            query: Lucene query or plain text
            limit: Maximum number of results

        Returns:
            Candidates sorted by MusicBrainz relevance score
        """
        query = query.strip()
        if not self.is_available or not query:
            return []

        async def load() -> list[Candidate]:
            data = await self._get_json(
                "/release-group",
                params={"query": query, "fmt": "json", "limit": limit},
            )
            groups = (data or {}).get("release-groups") or []
            return [parse_release_group(g) for g in groups if g.get("id")]

        return await self._cache.cached(
            make_key(self.PROVIDER, "search", query, limit), OPEN_METADATA_TTL, load
        )

    async def search_artist(self, name: str) -> ArtistMatch | None:
        """
        Find the top-scoring artist for a name.

        Returns:
            ArtistMatch or None when MusicBrainz has no artist for that name
        """
        name = name.strip()
        if not self.is_available or not name:
            return None

        async def load() -> ArtistMatch | None:
            data = await self._get_json(
                "/artist",
                params={"query": f"artist:{_lucene_phrase(name)}", "fmt": "json", "limit": 1},
            )
            artists = (data or {}).get("artists") or []
            if not artists or not artists[0].get("id"):
                return None
            top = artists[0]
            return ArtistMatch(artist_id=top["id"], artist_name=top.get("name") or name)

        return await self._cache.cached(
            make_key(self.PROVIDER, "artist", name), OPEN_METADATA_TTL, load
        )

    # Yo future me, browse (artist=<mbid>) has no server-side ordering, so we fetch a full
    # page, keep primary-type Album only (singles/EPs/broadcasts drown the albums otherwise)
    # and sort newest-first ourselves. Undated groups go last.
    async def list_release_groups(
        self, artist_id: str, artist_name: str, limit: int = 20
    ) -> list[Candidate]:
        """
        List an artist's albums, newest first.

        Args:
            artist_id: MusicBrainz artist id
            artist_name: Display name to put on every candidate
            limit: Maximum number of albums

        Returns:
            Candidates (primary type Album), newest first
        """
        if not self.is_available or not artist_id:
            return []

        async def load() -> list[Candidate]:
            data = await self._get_json(
                "/release-group",
                params={
                    "artist": artist_id,
                    "type": "album",
                    "fmt": "json",
                    "limit": _BROWSE_PAGE_SIZE,
                },
            )
            groups = [
                g
                for g in (data or {}).get("release-groups") or []
                if g.get("id") and g.get("primary-type") == "Album"
            ]
            groups.sort(key=lambda g: g.get("first-release-date") or "", reverse=True)
            return [parse_release_group(g, artist_name) for g in groups[:limit]]

        return await self._cache.cached(
            make_key(self.PROVIDER, "release-groups", artist_id, limit),
            OPEN_METADATA_TTL,
            load,
        )

    async def search_releases(
        self, artist: str, title: str, limit: int = 5
    ) -> list[Candidate]:
        """
        Search releases (specific pressings) by artist and title.

        Hey future me - the quotes around artist and title are IMPORTANT for phrase
        matching. Without them "The Wall" becomes "the OR wall" and you get garbage.
        """
        if not self.is_available or not (artist.strip() or title.strip()):
            return []

        query_parts = []
        if artist.strip():
            query_parts.append(f"artist:{_lucene_phrase(artist.strip())}")
        if title.strip():
            query_parts.append(f"release:{_lucene_phrase(title.strip())}")
        query = " AND ".join(query_parts)

        async def load() -> list[Candidate]:
            data = await self._get_json(
                "/release", params={"query": query, "fmt": "json", "limit": limit}
            )
            releases = (data or {}).get("releases") or []
            return [parse_release(r) for r in releases if r.get("id")]

        return await self._cache.cached(
            make_key(self.PROVIDER, "releases", artist, title, limit),
            OPEN_METADATA_TTL,
            load,
        )

    async def search_release(self, artist: str, title: str) -> Candidate | None:
        """Best matching release for artist + title (None if nothing matches)."""
        releases = await self.search_releases(artist, title, limit=1)
        return releases[0] if releases else None
