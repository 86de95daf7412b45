"""Shared HTTP asset download helpers.

Used by the asset persister (re-hosting generated images), the generative
client (fetching the uploaded photo for Gemini) and the PDF endpoint.
Besides http(s) URLs, ``data:`` URIs are accepted: Gemini returns images
inline and the generative client hands them around in that form.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
from dataclasses import dataclass

import httpx
import structlog
from PIL import Image

from app.errors import StorageError

logger = structlog.get_logger()

FETCH_TIMEOUT_SECONDS = 30.0

_PIL_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


@dataclass(frozen=True)
class FetchedAsset:
    data: bytes
    content_type: str


def _fetch_error(message: str) -> StorageError:
    return StorageError(code="asset_fetch_failed", detail=message)


def sniff_image_type(data: bytes) -> str | None:
    """Return the MIME type Pillow detects for ``data``, or None if not an image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _PIL_FORMAT_TO_MIME.get(img.format or "")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError):
        return None


def decode_data_uri(uri: str) -> FetchedAsset:
    """Decode a base64 ``data:<mime>;base64,<payload>`` URI."""
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise _fetch_error("Unsupported data URI")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise _fetch_error("Corrupt data URI payload") from exc
    content_type = header[len("data:") : -len(";base64")] or "application/octet-stream"
    return FetchedAsset(data=data, content_type=content_type)


def to_data_uri(data: bytes, content_type: str) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


async def fetch_asset(client: httpx.AsyncClient, url: str) -> FetchedAsset:
    """Fetch one asset. Raises StorageError(asset_fetch_failed) on any failure."""
    if url.startswith("data:"):
        return decode_data_uri(url)

    try:
        response = await client.get(url, timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise _fetch_error(f"Timeout downloading asset: {url[:100]}") from exc
    except httpx.RequestError as exc:
        raise _fetch_error(
            f"Network error downloading asset: {url[:100]}: {type(exc).__name__}"
        ) from exc

    if response.status_code >= 400:
        raise _fetch_error(f"HTTP {response.status_code} downloading asset: {url[:100]}")

    content_type = response.headers.get("content-type", "").split(";")[0].strip()
    data = response.content
    if not content_type.startswith("image/"):
        content_type = sniff_image_type(data) or content_type or "application/octet-stream"
    return FetchedAsset(data=data, content_type=content_type)


async def download_image(url: str) -> Image.Image:
    """Download and decode an image. Raises StorageError if either step fails."""
    async with httpx.AsyncClient() as client:
        asset = await fetch_asset(client, url)
    try:
        img = Image.open(io.BytesIO(asset.data))
        img.load()  # Force full decode to catch truncation
    except Exception as exc:
        raise _fetch_error(f"Downloaded image is corrupt: {url[:100]}") from exc
    return img


async def download_images_best_effort(urls: list[str]) -> dict[str, Image.Image]:
    """Download several images concurrently; failures are logged and left out."""
    unique = list(dict.fromkeys(u for u in urls if u))
    if not unique:
        return {}
    results = await asyncio.gather(*(download_image(u) for u in unique), return_exceptions=True)
    images: dict[str, Image.Image] = {}
    for url, result in zip(unique, results, strict=True):
        if isinstance(result, BaseException):
            logger.warning("image_download_skipped", url=url[:100], error=str(result))
            continue
        images[url] = result
    return images
