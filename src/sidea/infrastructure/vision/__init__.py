"""Vision providers and image pre-processing."""

from sidea.infrastructure.vision.anthropic_provider import AnthropicVisionProvider
from sidea.infrastructure.vision.image_prep import prepare_image
from sidea.infrastructure.vision.openai_provider import OpenAIVisionProvider

__all__ = [
    "AnthropicVisionProvider",
    "OpenAIVisionProvider",
    "prepare_image",
]
