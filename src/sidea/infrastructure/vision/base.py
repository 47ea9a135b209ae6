"""Prompt and answer parsing shared by both vision providers."""

import json
import logging
import re
from typing import Any

from sidea.domain.entities import VisionResult
from sidea.domain.exceptions import ProviderParseError
from sidea.domain.value_objects import parse_year

logger = logging.getLogger(__name__)

VISION_PROMPT = """What album is this? Look at the album cover and identify the artist name, album title, and year if visible.

Also provide a confidence score (0-100) indicating how certain you are about the identification.

Return ONLY JSON:
{"artist":"Artist Name","album":"Album Title","year":1994,"confidence":85}

Use null for any field you cannot determine. Confidence scoring guide:
- 90-100: Very certain, clear text and recognizable album
- 70-89: Confident, most details visible
- 50-69: Moderate confidence, some details unclear
- 30-49: Low confidence, image quality or partial visibility issues
- 0-29: Very uncertain, guessing based on limited information"""

# Models like to wrap the JSON in prose or ```json fences - grab the outermost object
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clamp_confidence(value: Any) -> int:
    try:
        confidence = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, confidence))


# Hey future me, a missing/garbage confidence counts as 0, NOT as an error. That way a
# provider that forgets the field simply loses against the other one in the fallback race.
# No JSON object at all IS an error though - that's a hard failure for this provider call.
def parse_structured_answer(text: str | None, provider_name: str) -> VisionResult:
    """Parse the provider's text answer into a VisionResult.

    Raises:
        ProviderParseError: No JSON object could be found/decoded
    """
    if not text:
        raise ProviderParseError(
            f"No response from {provider_name}", provider=provider_name
        )

    match = _JSON_OBJECT.search(text)
    if not match:
        logger.warning(f"{provider_name}: no JSON object in vision answer")
        raise ProviderParseError(
            f"Could not parse JSON from {provider_name} response", provider=provider_name
        )

    try:
        extracted = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ProviderParseError(
            f"Could not parse JSON from {provider_name} response", provider=provider_name
        ) from e

    if not isinstance(extracted, dict):
        raise ProviderParseError(
            f"Unexpected JSON from {provider_name} response", provider=provider_name
        )

    year = extracted.get("year")
    return VisionResult(
        provider_name=provider_name,
        artist=_clean_text(extracted.get("artist")),
        album=_clean_text(extracted.get("album")),
        year=parse_year(year) if isinstance(year, (int, str)) else None,
        confidence=_clamp_confidence(extracted.get("confidence")),
    )
