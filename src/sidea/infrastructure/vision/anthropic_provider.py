"""Anthropic vision provider (Messages API over httpx).

Hey future me - this talks to POST /v1/messages directly with httpx instead of pulling in
another SDK. The request shape is small and stable:

    headers: x-api-key, anthropic-version
    body:    model, max_tokens, messages=[{role: user, content: [image block, text block]}]

The image block wants raw base64 + media_type (jpeg/png/gif/webp only). prepare_image()
always hands us JPEG, so that's never an issue here.
"""

import base64
import logging
from typing import Any

import httpx

from sidea.config.settings import VisionSettings
from sidea.domain.entities import ProviderName, VisionResult
from sidea.domain.exceptions import ExternalServiceError, ProviderUnavailableError
from sidea.domain.ports import IVisionProvider, PreparedImage
from sidea.infrastructure.integrations.base_client import ProviderHttpClient
from sidea.infrastructure.rate_limiter import RequestThrottle
from sidea.infrastructure.vision.base import VISION_PROMPT, parse_structured_answer

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


def _first_text_block(payload: dict[str, Any]) -> str | None:
    for block in payload.get("content") or []:
        if block.get("type") == "text":
            return block.get("text")
    return None


class AnthropicVisionProvider(ProviderHttpClient, IVisionProvider):
    """Vision extraction via the Anthropic Messages API."""

    PROVIDER = ProviderName.ANTHROPIC.value

    def __init__(
        self,
        settings: VisionSettings,
        throttle: RequestThrottle,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url=settings.anthropic_base_url,
            throttle=throttle,
            headers={
                "x-api-key": settings.anthropic_api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self.settings = settings

    @property
    def name(self) -> str:
        return self.PROVIDER

    @property
    def is_available(self) -> bool:
        return bool(self.settings.anthropic_api_key)

    # The throttle belongs to this provider alone (built in build_vision_providers)
    async def close(self) -> None:
        await super().close()
        await self._throttle.close()

    async def extract(self, image: PreparedImage) -> VisionResult:
        """Identify the album on the image.

        Raises:
            ProviderUnavailableError: No API key configured
            ProviderTimeoutError: Request timed out
            ProviderParseError: Answer had no JSON
            ExternalServiceError: Any other API failure
        """
        if not self.is_available:
            raise ProviderUnavailableError(
                "Anthropic API key not configured", provider=self.name
            )

        body = {
            "model": self.settings.anthropic_model,
            "max_tokens": self.settings.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": image.media_type,
                                "data": base64.b64encode(image.data).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": VISION_PROMPT},
                    ],
                }
            ],
        }

        response = await self._rate_limited_request("POST", "/v1/messages", json=body)
        if response.status_code >= 400:
            logger.warning(
                f"Anthropic vision request failed with HTTP {response.status_code}"
            )
            raise ExternalServiceError(
                f"Anthropic returned HTTP {response.status_code}", provider=self.name
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                "Anthropic returned invalid JSON", provider=self.name
            ) from e

        text = _first_text_block(payload) if isinstance(payload, dict) else None
        logger.debug(f"Anthropic raw text response: {text}")
        return parse_structured_answer(text, self.name)
