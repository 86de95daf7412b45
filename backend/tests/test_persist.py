"""Tests for AssetPersister — re-hosting transient images in R2.

R2 is a MagicMock boto3 client; image hosts are an httpx.MockTransport.
"""

import base64

import httpx
import pytest

from app.activities.persist import AssetPersister
from tests.fakes import PUBLIC_BASE, make_png, mock_http_factory, serve_png


def _is_durable(url: str) -> bool:
    return url.startswith(f"{PUBLIC_BASE}/generated/user-1/proj-1/")


class TestPersist:
    @pytest.mark.asyncio
    async def test_all_succeed(self, storage, s3_client):
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())
        urls = ["https://cdn.test/a.png", "https://cdn.test/b.png"]

        result = await persister.persist(urls, "user-1", "proj-1")

        assert len(result) == 2
        assert all(_is_durable(u) for u in result)
        assert s3_client.put_object.call_count == 2
        assert s3_client.put_object.call_args.kwargs["ContentType"] == "image/png"

    @pytest.mark.asyncio
    async def test_failed_fetch_keeps_original_in_place(self, storage):
        """The middle URL 404s: it stays as-is, neighbours are re-hosted."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/b.png":
                return httpx.Response(404)
            return serve_png(request)

        persister = AssetPersister(storage, http_client_factory=mock_http_factory(handler))
        urls = ["https://cdn.test/a.png", "https://cdn.test/b.png", "https://cdn.test/c.png"]

        result = await persister.persist(urls, "user-1", "proj-1")

        assert len(result) == 3
        assert _is_durable(result[0])
        assert result[1] == "https://cdn.test/b.png"
        assert _is_durable(result[2])

    @pytest.mark.asyncio
    async def test_network_error_falls_back(self, storage):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("boom", request=request)

        persister = AssetPersister(storage, http_client_factory=mock_http_factory(handler))
        result = await persister.persist(["https://cdn.test/a.png"], "user-1", "proj-1")
        assert result == ["https://cdn.test/a.png"]

    @pytest.mark.asyncio
    async def test_storage_failure_falls_back(self, storage, s3_client):
        from botocore.exceptions import ClientError

        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "InternalError", "Message": "down"}}, "PutObject"
        )
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())

        result = await persister.persist(["https://cdn.test/a.png"], "user-1", "proj-1")

        assert result == ["https://cdn.test/a.png"]

    @pytest.mark.asyncio
    async def test_empty_entries_dropped(self, storage):
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())
        result = await persister.persist(
            ["https://cdn.test/a.png", "", "https://cdn.test/c.png"], "user-1", "proj-1"
        )
        assert len(result) == 2
        assert all(_is_durable(u) for u in result)

    @pytest.mark.asyncio
    async def test_empty_input(self, storage):
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())
        assert await persister.persist([], "user-1", "proj-1") == []

    @pytest.mark.asyncio
    async def test_data_uri_is_stored(self, storage, s3_client):
        """Inline images from the image model arrive as data: URIs."""
        png = make_png()
        uri = "data:image/png;base64," + base64.b64encode(png).decode()
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())

        (url,) = await persister.persist([uri], "user-1", "proj-1")

        assert _is_durable(url)
        assert url.endswith("_design_0.png")
        assert s3_client.put_object.call_args.kwargs["Body"] == png

    @pytest.mark.asyncio
    async def test_order_preserved_with_limited_concurrency(self, storage):
        persister = AssetPersister(
            storage, http_client_factory=mock_http_factory(), max_concurrency=1
        )
        urls = [f"https://cdn.test/{i}.png" for i in range(5)]

        result = await persister.persist(urls, "user-1", "proj-1")

        assert [u.rsplit("_", 1)[-1] for u in result] == [f"{i}.png" for i in range(5)]

    @pytest.mark.asyncio
    async def test_keys_namespaced_by_owner_and_project(self, storage, s3_client):
        persister = AssetPersister(storage, http_client_factory=mock_http_factory())
        await persister.persist(["https://cdn.test/a.png"], "user-1", "proj-1")
        key = s3_client.put_object.call_args.kwargs["Key"]
        assert key.startswith("generated/user-1/proj-1/")
