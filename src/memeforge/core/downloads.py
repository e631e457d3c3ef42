"""Saving generated images to disk.

The download action takes one image payload and its 0-based position in the
batch and writes a PNG named after the 1-based ordinal (``meme_3.png`` for
index 2).  Payloads are decoded with Pillow and re-encoded as PNG, so the
file extension is always truthful even when the endpoint returns JPEG.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .models import ImageResult, download_filename

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """The payload could not be decoded as an image."""


def decode_image(payload: bytes | str) -> Image.Image:
    """Decode raw bytes or base64 text into a PIL image.

    Args:
        payload: Raw image bytes, or the same bytes encoded as base64 text

    Returns:
        Loaded PIL image

    Raises:
        DownloadError: If the payload is not valid base64 or not an image
    """
    if isinstance(payload, str):
        try:
            payload = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DownloadError(f"Invalid base64 image payload: {e}") from e

    try:
        image = Image.open(io.BytesIO(payload))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise DownloadError(f"Payload is not a readable image: {e}") from e

    return image


def save_image(
    image: ImageResult | bytes | str,
    index: int | None,
    outputs_dir: Path,
    prefix: str = "meme",
) -> Path:
    """Save one generated image as ``<prefix>_<index + 1>.png``.

    Args:
        image: ImageResult, raw bytes, or base64 text
        index: 0-based position in the batch (taken from ImageResult if None)
        outputs_dir: Directory to write into (created if missing)
        prefix: Filename prefix

    Returns:
        Path of the written PNG file

    Raises:
        DownloadError: If the payload cannot be decoded
        ValueError: If no index is given for a raw payload
    """
    if isinstance(image, ImageResult):
        payload: bytes | str = image.data
        if index is None:
            index = image.index
    else:
        payload = image

    if index is None:
        raise ValueError("index is required when saving a raw payload")

    pil_image = decode_image(payload)

    outputs_dir.mkdir(parents=True, exist_ok=True)
    path = outputs_dir / download_filename(index, prefix)
    pil_image.save(path, format="PNG")

    logger.info(f"Saved image {index + 1} to {path}")
    return path
