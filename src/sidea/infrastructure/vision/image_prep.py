"""Image pre-processing for vision providers.

Hey future me - phone photos of record sleeves are 12MP HEIC-converted monsters. Both vision
APIs reject anything above ~5MB and bill by pixels, so every image gets squeezed here first:

1. Accept raw bytes, raw base64 or a "data:image/...;base64," URI
2. Downscale proportionally to fit max_dimension × max_dimension (never upscale)
3. Re-encode as JPEG at initial_quality, lower the quality in steps of 10 until the result
   fits max_bytes or we hit min_quality (then send whatever we have)

Pillow does the work. This is CPU-bound - call it via asyncio.to_thread from async code!
"""

import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

from sidea.domain.exceptions import ValidationError
from sidea.domain.ports import PreparedImage

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 4 * 1024 * 1024
MAX_DIMENSION = 2048
INITIAL_QUALITY = 85
MIN_QUALITY = 40
QUALITY_STEP = 10

_DATA_URI = re.compile(r"^data:image/[\w.+-]+;base64,(.+)$", re.DOTALL)


def decode_image_payload(payload: bytes | str) -> bytes:
    """Turn raw bytes, base64 text or a data URI into image bytes.

    Raises:
        ValidationError: Payload is empty or not valid base64
    """
    if isinstance(payload, bytes):
        if not payload:
            raise ValidationError("Image data is empty")
        return payload

    text = payload.strip()
    match = _DATA_URI.match(text)
    if match:
        text = match.group(1)
    if not text:
        raise ValidationError("Image data is empty")

    try:
        return base64.b64decode(text, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Image data is not valid base64") from e


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def prepare_image(
    payload: bytes | str,
    max_bytes: int = MAX_IMAGE_BYTES,
    max_dimension: int = MAX_DIMENSION,
    initial_quality: int = INITIAL_QUALITY,
    min_quality: int = MIN_QUALITY,
) -> PreparedImage:
    """Decode, downscale and JPEG-compress an image for a vision provider.

    Raises:
        ValidationError: Payload isn't a decodable image
    """
    data = decode_image_payload(payload)

    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            original_size = source.size
            image = source.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ValidationError("Image data is not a decodable image") from e

    # thumbnail() keeps the aspect ratio and never enlarges
    image.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

    quality = initial_quality
    encoded = _encode_jpeg(image, quality)
    while len(encoded) > max_bytes and quality - QUALITY_STEP >= min_quality:
        quality -= QUALITY_STEP
        encoded = _encode_jpeg(image, quality)

    logger.debug(
        f"Prepared image {original_size[0]}x{original_size[1]} -> "
        f"{image.size[0]}x{image.size[1]}, {len(data)} -> {len(encoded)} bytes (q={quality})"
    )
    return PreparedImage(data=encoded, media_type="image/jpeg")
