"""CoverArtArchive HTTP client implementation.

Hey future me - CoverArtArchive (CAA) is THE official source for MusicBrainz album artwork!
It's a separate service from MusicBrainz but tightly integrated, keyed by MusicBrainz ids.

Response format:
- GET /release/{mbid} returns JSON with an images array
- Each image has "front"/"back" flags, types, thumbnails and the original "image" URL
- The image URLs point at archive.org (coverartarchive.org redirects there)

GOTCHA: Not all releases have artwork! 404 simply means "no art for this release", it's
the most common answer for older/indie pressings. Never treat it as an error.

This client also downloads image bytes for local caching. The download goes through the
same throttle as the JSON lookups - most URLs we download are CAA/archive.org ones anyway.
"""

import logging
from typing import Any

import httpx

from sidea.application.cache import IMAGE_LOCATION_TTL, ProviderCache, make_key
from sidea.config.settings import CoverArtArchiveSettings
from sidea.domain.entities import ProviderName
from sidea.domain.exceptions import ExternalServiceError
from sidea.infrastructure.integrations.base_client import ProviderHttpClient
from sidea.infrastructure.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)


def pick_front_image(images: list[dict[str, Any]]) -> str | None:
    """URL of the front image, else of the first image (None when empty)."""
    for image in images:
        if image.get("front") and image.get("image"):
            return str(image["image"])
    for image in images:
        if image.get("image"):
            return str(image["image"])
    return None


class CoverArtArchiveClient(ProviderHttpClient):
    """HTTP client for CoverArtArchive API.

    Usage:
        async with CoverArtArchiveClient(settings, throttle, cache, user_agent) as client:
            front_url = await client.get_front_cover_url(release_mbid)
            if front_url:
                data = await client.download_image(front_url)
    """

    PROVIDER = ProviderName.COVERARTARCHIVE.value

    def __init__(
        self,
        settings: CoverArtArchiveSettings,
        throttle: RequestThrottle,
        cache: ProviderCache,
        user_agent: str,
        timeout: float = 8.0,
        download_timeout: float = 9.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize CoverArtArchive client.

        No API key needed - CAA is completely free and public, but they still like
        a proper User-Agent.
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
        self._download_timeout = download_timeout

    @property
    def is_available(self) -> bool:
        return True

    async def get_front_cover_url(self, release_mbid: str) -> str | None:
        """Get the front cover URL for a release.

        Args:
            release_mbid: MusicBrainz Release ID

        Returns:
            Direct URL to the front cover (or the first image when no image is
            flagged front), None if the release has no artwork.

        Raises:
            ExternalServiceError: CAA failed with something other than 404
        """
        release_mbid = release_mbid.strip()
        if not release_mbid:
            return None

        async def load() -> str | None:
            data = await self._get_json(f"/release/{release_mbid}", not_found_ok=True)
            if data is None:
                logger.debug(f"No artwork found for release {release_mbid}")
                return None
            return pick_front_image(data.get("images") or [])

        return await self._cache.cached(
            make_key(self.PROVIDER, "coverart", release_mbid), IMAGE_LOCATION_TTL, load
        )

    # Hey future me, the URL can be ANY host (Discogs image CDN, archive.org...). httpx ignores
    # base_url for absolute URLs, so the same client works. Redirects are followed - CAA answers
    # with 307s to archive.org.
    async def download_image(self, url: str) -> bytes:
        """Download image bytes for local caching.

        Raises:
            ExternalServiceError: Download failed or returned no content
        """
        response = await self._rate_limited_request(
            "GET",
            url,
            timeout=self._download_timeout,
            headers={"Accept": "image/*"},
        )
        if response.status_code >= 400:
            logger.warning(f"Image download failed with HTTP {response.status_code}: {url}")
            raise ExternalServiceError(
                f"Image download failed with HTTP {response.status_code}",
                provider=self.PROVIDER,
            )
        if not response.content:
            raise ExternalServiceError("Image download returned no data", provider=self.PROVIDER)
        return response.content
