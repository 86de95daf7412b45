"""Gemini image-model helpers: client construction and response parsing."""

from __future__ import annotations

import re

import structlog
from google import genai
from google.genai import types

from app.utils.http import to_data_uri

logger = structlog.get_logger()

IMAGE_CONFIG = types.GenerateContentConfig(
    response_modalities=["TEXT", "IMAGE"],
)

# Image links a model may write into its text ("...see https://x/y.png")
IMAGE_URL_RE = re.compile(
    r"https?://[^\s\"'<>()\[\]]+\.(?:png|jpe?g|webp|gif)(?:\?[^\s\"'<>()\[\]]*)?(?!\w)",
    re.IGNORECASE,
)


def get_client(api_key: str) -> genai.Client:
    return genai.Client(api_key=api_key)


def _parts(response: types.GenerateContentResponse) -> list[types.Part]:
    if not response.candidates:
        return []
    content = response.candidates[0].content
    if content is None or content.parts is None:
        return []
    return list(content.parts)


def extract_text(response: types.GenerateContentResponse) -> str:
    """Join all text parts of the first candidate."""
    return "\n".join(part.text for part in _parts(response) if part.text is not None)


def extract_inline_images(response: types.GenerateContentResponse) -> list[str]:
    """Return every inline image part as a ``data:`` URI, in response order."""
    uris: list[str] = []
    for part in _parts(response):
        inline = part.inline_data
        if inline is None or not inline.data:
            continue
        mime_type = inline.mime_type or "image/png"
        if not mime_type.startswith("image/"):
            logger.debug("gemini_non_image_inline_part", mime_type=mime_type)
            continue
        uris.append(to_data_uri(inline.data, mime_type))
    return uris


def extract_image_urls(text: str) -> list[str]:
    """Pull image links out of free text, de-duplicated, first occurrence wins."""
    return list(dict.fromkeys(m.group(0) for m in IMAGE_URL_RE.finditer(text or "")))


def extract_image_refs(response: types.GenerateContentResponse) -> list[str]:
    """Inline images first, then any image URLs the model wrote in its text."""
    return extract_inline_images(response) + extract_image_urls(extract_text(response))
