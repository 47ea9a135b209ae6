"""OpenAI vision provider (chat completions with an image_url part)."""

import base64
import logging

import openai
from openai import AsyncOpenAI

from sidea.config.settings import VisionSettings
from sidea.domain.entities import ProviderName, VisionResult
from sidea.domain.exceptions import (
    ExternalServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from sidea.domain.ports import IVisionProvider, PreparedImage
from sidea.infrastructure.rate_limiter import RequestThrottle
from sidea.infrastructure.vision.base import VISION_PROMPT, parse_structured_answer

logger = logging.getLogger(__name__)


class OpenAIVisionProvider(IVisionProvider):
    """Vision extraction via the OpenAI API."""

    # Hey future me, max_retries=0 on purpose: the SDK's built-in retries would silently
    # triple the latency of a failing call and bypass our throttle. The fallback provider
    # is our retry.
    def __init__(
        self,
        settings: VisionSettings,
        throttle: RequestThrottle,
        timeout: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.settings = settings
        self._throttle = throttle
        self._timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return ProviderName.OPENAI.value

    @property
    def is_available(self) -> bool:
        return bool(self.settings.openai_api_key) or self._client is not None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def close(self) -> None:
        """Close the SDK client and stop the throttle."""
        if self._client is not None:
            await self._client.close()
            self._client = None
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
            raise ProviderUnavailableError("OpenAI API key not configured", provider=self.name)

        client = self._get_client()
        encoded = base64.b64encode(image.data).decode("ascii")
        image_url = f"data:{image.media_type};base64,{encoded}"

        try:
            response = await self._throttle.execute(
                lambda: client.chat.completions.create(
                    model=self.settings.openai_model,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {
                                    "type": "image_url",
                                    "image_url": {"url": image_url, "detail": "high"},
                                },
                                {"type": "text", "text": VISION_PROMPT},
                            ],
                        }
                    ],
                    max_tokens=self.settings.max_tokens,
                    temperature=0.3,
                )
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeoutError("OpenAI did not respond in time", provider=self.name) from e
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI vision request failed: {e}")
            raise ExternalServiceError(
                f"OpenAI vision request failed: {e}", provider=self.name
            ) from e

        content = response.choices[0].message.content if response.choices else None
        logger.debug(f"OpenAI raw response: {content}")
        return parse_structured_answer(content, self.name)
