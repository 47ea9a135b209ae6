"""Vision resolution - identify a record from a photo of its sleeve.

Hey future me - this is the Primary/Fallback protocol for the two vision providers:

    primary.extract()
      ├─ confidence >= min_confidence ............ return primary (used_fallback=False)
      ├─ below threshold, fallback configured .... run fallback, return the HIGHER confidence
      │                                            result, the other one as alternate_result,
      │                                            used_fallback=True either way
      ├─ below threshold, no fallback ............ return primary as-is
      └─ primary raised
           ├─ fallback configured ................ fallback result is the ONLY result
           └─ no fallback ........................ error propagates

Ties go to the primary (fallback must be STRICTLY better). Which provider is primary is
decided ONCE at construction from config - see build_vision_providers().
"""

import asyncio
import logging
from dataclasses import replace

from sidea.config.settings import HttpSettings, VisionSettings
from sidea.domain.entities import Candidate, ImageMatches, VisionResult
from sidea.domain.exceptions import (
    ExternalServiceError,
    ProviderUnavailableError,
    ValidationError,
)
from sidea.domain.ports import IVisionProvider, PreparedImage
from sidea.domain.value_objects import normalize_key
from sidea.infrastructure.integrations.discogs_client import DiscogsClient
from sidea.infrastructure.rate_limiter import RequestThrottle
from sidea.infrastructure.vision import (
    AnthropicVisionProvider,
    OpenAIVisionProvider,
    prepare_image,
)

logger = logging.getLogger(__name__)

# Catalogue candidates fetched per extracted guess
IMAGE_MATCH_LIMIT = 5


# Yo, selection rules: an explicit VISION_PROVIDER wins only if its key is set. Otherwise OpenAI
# is primary when it has a key, Anthropic when only it has one. The other provider becomes the
# fallback if (and only if) it has a key too. Zero keys → (None, None), analyze raises later.
def build_vision_providers(
    settings: VisionSettings,
    http: HttpSettings | None = None,
) -> tuple[IVisionProvider | None, IVisionProvider | None]:
    """Create (primary, fallback) vision providers from configuration."""
    timeout = max((http or HttpSettings()).timeout, 30.0)
    providers: dict[str, IVisionProvider] = {}
    if settings.openai_api_key:
        providers["openai"] = OpenAIVisionProvider(
            settings,
            RequestThrottle.for_vision("openai", settings.requests_per_minute),
            timeout=timeout,
        )
    if settings.anthropic_api_key:
        providers["anthropic"] = AnthropicVisionProvider(
            settings,
            RequestThrottle.for_vision("anthropic", settings.requests_per_minute),
            timeout=timeout,
        )

    if not providers:
        logger.warning("No vision API keys configured - image recognition will not work")
        return None, None

    if settings.provider and settings.provider in providers:
        primary_name = settings.provider
    elif "openai" in providers:
        primary_name = "openai"
    else:
        primary_name = "anthropic"

    primary = providers[primary_name]
    fallback = next(
        (p for name, p in providers.items() if name != primary_name), None
    )

    logger.info(f"Vision primary provider: {primary.name}")
    if fallback:
        logger.info(
            f"Vision fallback provider: {fallback.name} "
            f"(min confidence: {settings.min_confidence}%)"
        )
    return primary, fallback


class VisionService:
    """Confidence-based vision resolution plus catalogue matching."""

    def __init__(
        self,
        primary: IVisionProvider | None,
        fallback: IVisionProvider | None = None,
        settings: VisionSettings | None = None,
        catalogue: DiscogsClient | None = None,
    ) -> None:
        """Initialize vision service.

        Args:
            primary: Primary vision provider (None = image analysis unavailable)
            fallback: Optional fallback provider
            settings: Vision settings (threshold, image limits)
            catalogue: Catalogue client used to turn guesses into candidates
        """
        self._primary = primary
        self._fallback = fallback
        self.settings = settings or VisionSettings()
        self._catalogue = catalogue

    @property
    def min_confidence(self) -> int:
        return self.settings.min_confidence

    @property
    def is_available(self) -> bool:
        return self._primary is not None

    async def resolve(self, image: PreparedImage) -> VisionResult:
        """Run the Primary/Fallback protocol on a prepared image.

        Raises:
            ProviderUnavailableError: No vision provider configured
            ExternalServiceError: Primary failed and there is no fallback
        """
        if self._primary is None:
            raise ProviderUnavailableError("No vision provider configured")

        primary = self._primary
        fallback = self._fallback

        try:
            result = await primary.extract(image)
        except Exception as e:
            if fallback is None:
                raise
            logger.warning(f"{primary.name} failed, trying {fallback.name}: {e}")
            fallback_result = await fallback.extract(image)
            return replace(fallback_result, used_fallback=True)

        if result.confidence >= self.min_confidence:
            logger.info(
                f"{primary.name} confidence {result.confidence}% meets threshold "
                f"{self.min_confidence}%"
            )
            return result

        if fallback is None:
            return result

        logger.info(
            f"{primary.name} confidence {result.confidence}% below threshold "
            f"{self.min_confidence}%, trying {fallback.name}"
        )
        # Hey future me, a failing fallback must not throw away a perfectly usable (if shaky)
        # primary answer. We return the primary untouched in that case.
        try:
            fallback_result = await fallback.extract(image)
        except Exception as e:
            logger.warning(f"{fallback.name} fallback failed, keeping {primary.name} result: {e}")
            return result

        if fallback_result.confidence > result.confidence:
            logger.info(
                f"{fallback.name} confidence {fallback_result.confidence}% is better, "
                "using fallback result"
            )
            return replace(fallback_result, used_fallback=True, alternate_result=result)

        logger.info(
            f"{primary.name} confidence {result.confidence}% is still better, "
            "using primary result"
        )
        return replace(result, used_fallback=True, alternate_result=fallback_result)

    async def prepare(self, payload: bytes | str) -> PreparedImage:
        """Downscale/compress an uploaded image off the event loop."""
        return await asyncio.to_thread(
            prepare_image,
            payload,
            self.settings.max_image_bytes,
            self.settings.max_dimension,
            self.settings.initial_quality,
            self.settings.min_quality,
        )

    async def analyze_image(self, payload: bytes | str) -> VisionResult:
        """Identify artist/album/year from an image (bytes, base64 or data URI).

        Raises:
            ValidationError: Payload is not a decodable image
            ProviderUnavailableError: No vision provider configured
            ExternalServiceError: Vision provider(s) failed
        """
        if self._primary is None:
            raise ProviderUnavailableError("No vision provider configured")
        image = await self.prepare(payload)
        return await self.resolve(image)

    # Listen up, when both providers ran we search the catalogue for BOTH guesses (if they
    # differ). The user often recognizes the right record in the loser's matches. Catalogue
    # failures here only cost us matches, the extracted guess is still returned.
    async def analyze_image_with_matches(self, payload: bytes | str) -> ImageMatches:
        """Analyze an image and search the catalogue for the extracted release.

        Raises:
            ValidationError: Nothing could be extracted from the image
        """
        extracted = await self.analyze_image(payload)
        if extracted.is_empty:
            raise ValidationError("Could not extract album information from image")

        guesses = [extracted]
        alternate = extracted.alternate_result
        if (
            alternate is not None
            and not alternate.is_empty
            and normalize_key(alternate.search_query) != normalize_key(extracted.search_query)
        ):
            guesses.append(alternate)

        matches: list[Candidate] = []
        seen_ids: set[str] = set()
        for guess in guesses:
            for candidate in await self._search_catalogue(guess.search_query):
                if candidate.external_id in seen_ids:
                    continue
                seen_ids.add(candidate.external_id)
                matches.append(
                    replace(
                        candidate,
                        matched_by=guess.provider_name,
                        match_confidence=guess.confidence,
                    )
                )

        return ImageMatches(extracted=extracted, matches=matches)

    async def _search_catalogue(self, query: str) -> list[Candidate]:
        if self._catalogue is None or not query:
            return []
        try:
            return await self._catalogue.search_by_text(query, limit=IMAGE_MATCH_LIMIT)
        except ExternalServiceError as e:
            logger.warning(f"Catalogue search failed after image analysis: {e}")
            return []
