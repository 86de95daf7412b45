"""Asset persister — re-hosts transient generated images in R2.

Generated images come back as short-lived third-party URLs or inline
``data:`` URIs. Each one is fetched and stored under
``generated/<owner>/<project>/``; the durable URL takes its place.

A failure on one asset never sinks the batch: that position keeps the
original reference. Empty entries are dropped. Output order always matches
input order.
"""

from __future__ import annotations

import asyncio
import mimetypes
from collections.abc import Callable, Sequence

import httpx
import structlog

from app.utils.http import fetch_asset
from app.utils.r2 import ObjectStorage, storage_key

logger = structlog.get_logger()

STORAGE_SCOPE = "generated"
MAX_CONCURRENT_TRANSFERS = 4


def _extension_for(content_type: str) -> str:
    if content_type == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(content_type) or ".png"


class AssetPersister:
    def __init__(
        self,
        storage: ObjectStorage,
        http_client_factory: Callable[[], httpx.AsyncClient] = httpx.AsyncClient,
        max_concurrency: int = MAX_CONCURRENT_TRANSFERS,
    ) -> None:
        self._storage = storage
        self._http_client_factory = http_client_factory
        self._max_concurrency = max_concurrency

    async def persist(self, urls: Sequence[str], owner_id: str, project_id: str) -> list[str]:
        """Return durable URLs for ``urls``; failed positions keep the original."""
        sources = [url for url in urls if url]
        if not sources:
            return []

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(client: httpx.AsyncClient, index: int, url: str) -> str:
            async with semaphore:
                return await self._persist_one(client, index, url, owner_id, project_id)

        async with self._http_client_factory() as client:
            results = await asyncio.gather(
                *(_bounded(client, index, url) for index, url in enumerate(sources))
            )

        durable = sum(1 for src, out in zip(sources, results, strict=True) if out != src)
        logger.info(
            "assets_persisted",
            project_id=project_id,
            total=len(sources),
            durable=durable,
            fallback=len(sources) - durable,
        )
        return list(results)

    async def _persist_one(
        self,
        client: httpx.AsyncClient,
        index: int,
        url: str,
        owner_id: str,
        project_id: str,
    ) -> str:
        try:
            asset = await fetch_asset(client, url)
            name = f"design_{index}{_extension_for(asset.content_type)}"
            key = storage_key(STORAGE_SCOPE, owner_id, name, project_id)
            return await self._storage.store_public(key, asset.data, asset.content_type)
        except Exception as exc:
            logger.warning(
                "asset_persist_fallback",
                project_id=project_id,
                index=index,
                source=url[:100],
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            return url
