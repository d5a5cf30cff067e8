"""Screenshot preview generator.

Wraps Pillow to shrink a screenshot attached to a conversation turn into a
small PNG preview, so display lists do not carry full-resolution frames.

Example:
    previews = ThumbnailGenerator(max_size=(320, 180))
    preview_b64 = previews.create_thumbnail_from_base64(screenshot_b64)
"""
from __future__ import annotations

import base64
import binascii
import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError

DATA_URL_SEPARATOR = ";base64,"


class ThumbnailGenerator:
    """Turn base64 screenshots into base64 PNG previews.

    Args:
        max_size: Bounding box of the preview; aspect ratio is preserved.
        background: Colour used to flatten transparent screenshots.
    """

    def __init__(self, max_size: Tuple[int, int] = (320, 180), background: Tuple[int, int, int] = (255, 255, 255)):
        self.max_size = max_size
        self.background = background

    @staticmethod
    def _decode(data: str | bytes) -> bytes:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        if DATA_URL_SEPARATOR in text:
            text = text.split(DATA_URL_SEPARATOR, 1)[1]
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Invalid base64 data provided") from exc

    def create_thumbnail_from_base64(self, data: str | bytes) -> str:
        """Return a base64 PNG preview of a base64 (or data URL) screenshot.

        Raises:
            ValueError: If the data is not base64 or not a readable image.
        """
        raw = self._decode(data)
        try:
            src = Image.open(io.BytesIO(raw))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Decoded bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        flattened = Image.new("RGB", src.size, self.background)
        flattened.paste(src, mask=src.split()[3])

        out = io.BytesIO()
        flattened.save(out, format="PNG", optimize=True)
        return base64.b64encode(out.getvalue()).decode("utf-8")
