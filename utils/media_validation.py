"""Validation helpers for media payloads sent into a live session."""

import base64
import binascii
from typing import Union

DATA_URL_SEPARATOR = ";base64,"


def _strip_data_url(text: str) -> str:
    if DATA_URL_SEPARATOR in text:
        return text.split(DATA_URL_SEPARATOR, 1)[1]
    return text


def ensure_base64_image(raw: Union[str, bytes]) -> str:
    """Return base64 image text, encoding binary input when necessary.

    Accepts raw image bytes, base64 bytes/text or a ``data:`` URL.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(raw).decode("ascii")
    else:
        text = raw
    text = _strip_data_url(text.strip())
    if not text:
        raise ValueError("Image payload is required.")
    try:
        base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Image payload must be base64-encoded.") from exc
    return text


def ensure_base64_audio(raw: str) -> str:
    """Validate a base64 PCM chunk and return it unchanged.

    The streaming provider expects 16-bit PCM, so the decoded length must be even.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Audio payload is required.")
    try:
        decoded = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Audio payload must be base64-encoded PCM.") from exc
    if len(decoded) % 2:
        raise ValueError("PCM16 audio chunk has an odd number of bytes.")
    return raw
