"""Shared plumbing for the provider HTTP clients.

Hey future me - every provider client (Discogs, MusicBrainz, Cover Art Archive) used to carry
its own copy of _get_client / close / _rate_limited_request. The pacing now lives in the
injected RequestThrottle, so what's left is identical across providers and sits here:

- lazy httpx.AsyncClient with provider headers and the fixed outbound timeout
- _rate_limited_request(): EVERY request goes through the throttle, no exceptions
- httpx errors are translated into domain exceptions (ExternalServiceError family) so the
  services never import httpx

The transport parameter exists for tests (httpx.MockTransport). Production passes None.
"""

import logging
from typing import Any

import httpx

from sidea.application.cache import ProviderCache
from sidea.domain.exceptions import ExternalServiceError, ProviderTimeoutError
from sidea.infrastructure.rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)


class ProviderHttpClient:
    """Base class for throttled, cached provider HTTP clients."""

    PROVIDER = "provider"

    def __init__(
        self,
        base_url: str,
        throttle: RequestThrottle,
        cache: ProviderCache | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._throttle = throttle
        # Vision calls are never cached, those clients just get a private no-op instance
        self._cache = cache or ProviderCache()
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    @property
    def throttle(self) -> RequestThrottle:
        return self._throttle

    # Hey, same cleanup drill as always - close the client or leak connections.
    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Make a throttled request to the provider.

        Raises:
            ProviderTimeoutError: Request exceeded the outbound timeout
            ExternalServiceError: Transport-level failure
        """
        client = await self._get_client()
        try:
            return await self._throttle.execute(
                lambda: client.request(method, url, **kwargs)
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{self.PROVIDER}: timeout on {method} {url}")
            raise ProviderTimeoutError(
                f"{self.PROVIDER} did not respond in time", provider=self.PROVIDER
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"{self.PROVIDER}: transport error on {method} {url}: {e}")
            raise ExternalServiceError(
                f"{self.PROVIDER} request failed: {e}", provider=self.PROVIDER
            ) from e

    # Yo, 404 is NOT an error for lookups ("no such release", "no artwork") - callers opt in
    # with not_found_ok and get None back. Everything else non-2xx is a provider failure.
    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        not_found_ok: bool = False,
    ) -> dict[str, Any] | None:
        """GET a JSON document from the provider."""
        response = await self._rate_limited_request("GET", url, params=params)

        if response.status_code == 404 and not_found_ok:
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"{self.PROVIDER}: HTTP {response.status_code} for GET {url}"
            )
            raise ExternalServiceError(
                f"{self.PROVIDER} returned HTTP {response.status_code}",
                provider=self.PROVIDER,
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"{self.PROVIDER} returned invalid JSON", provider=self.PROVIDER
            ) from e

        if not isinstance(data, dict):
            raise ExternalServiceError(
                f"{self.PROVIDER} returned an unexpected payload",
                provider=self.PROVIDER,
            )
        return data

    async def __aenter__(self) -> "ProviderHttpClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
