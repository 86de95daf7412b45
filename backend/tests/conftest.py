"""Shared fixtures: in-memory store, mocked R2, fake generator, ASGI client.

Nothing here touches the network: boto3 is a MagicMock, transient image
hosts are served by ``httpx.MockTransport``, and the generative client is
an ``AsyncMock`` with the real class as its spec.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.activities.generate import GenerativeDesignClient
from app.activities.persist import AssetPersister
from app.config import Settings
from app.dependencies import Services, get_services
from app.main import app
from app.models.contracts import GenerationResult
from app.utils.project_store import InMemoryProjectStore
from app.utils.r2 import ObjectStorage
from tests.fakes import PUBLIC_BASE, THESIS, make_png, mock_http_factory


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage(s3_client) -> ObjectStorage:
    return ObjectStorage(s3_client, "test-bucket", PUBLIC_BASE)


@pytest.fixture
def store() -> InMemoryProjectStore:
    return InMemoryProjectStore()


@pytest.fixture
def generator() -> AsyncMock:
    fake = AsyncMock(spec=GenerativeDesignClient)
    fake.generate.return_value = GenerationResult(
        design_thesis=THESIS,
        generated_images=[
            "https://images.vendor.test/tmp/render_a.png?sig=abc",
            "https://images.vendor.test/tmp/render_b.png?sig=def",
        ],
        image_analysis="Property type: backyard",
    )
    return fake


@pytest.fixture
def persister(storage) -> AssetPersister:
    return AssetPersister(storage, http_client_factory=mock_http_factory())


@pytest.fixture
def services(store, storage, generator, persister) -> Services:
    return Services(
        Settings(),
        store=store,
        storage=storage,
        generator=generator,
        persister=persister,
    )


@pytest.fixture
async def client(services):
    app.dependency_overrides[get_services] = lambda: services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
