"""Integration tests for the project endpoints.

Runs the real pipeline through the ASGI app with an in-memory store, a
mocked R2 client, and a mocked generator (see conftest.py).
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.config import Settings, settings
from app.dependencies import Services, get_services
from app.errors import GenerationError
from app.main import app
from tests.fakes import AUTH, OWNER, PARAMS, PUBLIC_BASE


def _multipart(params: dict, image: bytes | None = None, filename: str = "yard.png"):
    files = {"data": (None, json.dumps(params), "application/json")}
    if image is not None:
        files["image"] = (filename, image, "image/png")
    return files


async def _create(client, headers=AUTH, **kwargs):
    return await client.post("/api/v1/projects", headers=headers, **kwargs)


class TestCreateProject:
    """POST /api/v1/projects"""

    @pytest.mark.asyncio
    async def test_multipart_with_image(self, client, png_bytes):
        resp = await _create(client, files=_multipart(PARAMS, png_bytes))

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "completed"
        assert body["ownerId"] == OWNER
        assert body["climateZone"] == "9b"
        assert body["description"] == "Keep the lemon tree"
        assert body["originalImage"].startswith(f"{PUBLIC_BASE}/uploads/{OWNER}/")
        assert body["totalCost"] == sum(i["totalPrice"] for i in body["materialsList"])
        assert all(u.startswith(PUBLIC_BASE) for u in body["generatedImages"])
        assert body["imageAnalysis"] == "Property type: backyard"

    @pytest.mark.asyncio
    async def test_multipart_without_image(self, client, generator):
        resp = await _create(client, files=_multipart(PARAMS))

        assert resp.status_code == 201
        assert resp.json()["originalImage"] is None
        assert generator.generate.call_args.args[1] is None

    @pytest.mark.asyncio
    async def test_json_body(self, client):
        resp = await _create(client, json=PARAMS)
        assert resp.status_code == 201
        assert resp.json()["name"] == "Back Garden"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client, generator):
        resp = await _create(client, headers={}, json=PARAMS)
        assert resp.status_code == 401
        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_field_rejected_before_side_effects(
        self, client, generator, s3_client, png_bytes
    ):
        params = {k: v for k, v in PARAMS.items() if k != "climateZone"}

        resp = await _create(client, files=_multipart(params, png_bytes))

        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "validation_error"
        assert "climateZone" in body["message"]
        generator.generate.assert_not_awaited()
        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, client, generator, store):
        resp = await _create(client, json={**PARAMS, "name": "   "})

        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"
        assert await store.list_for_owner(OWNER) == []
        generator.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_data_field(self, client):
        resp = await _create(client, files={"other": (None, "x")})
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_project_data"

    @pytest.mark.asyncio
    async def test_data_field_not_json(self, client):
        resp = await _create(client, files={"data": (None, "{not json")})
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_project_data"

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self, client):
        resp = await _create(
            client, headers={**AUTH, "content-type": "text/plain"}, content=b"hello"
        )
        assert resp.status_code == 415
        assert resp.json()["error"] == "unsupported_content_type"

    @pytest.mark.asyncio
    async def test_invalid_image(self, client, s3_client):
        resp = await _create(client, files=_multipart(PARAMS, b"definitely not a png"))
        assert resp.status_code == 422
        assert resp.json()["error"] == "invalid_image"
        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_oversize_image(self, client, png_bytes):
        with patch.object(settings, "max_upload_bytes", 100):
            resp = await _create(client, files=_multipart(PARAMS, png_bytes * 10))
        assert resp.status_code == 413
        assert resp.json()["error"] == "file_too_large"

    @pytest.mark.asyncio
    async def test_generation_failure_leaves_draft(self, client, generator, store):
        generator.generate.side_effect = GenerationError("narrative", "model unavailable")

        resp = await _create(client, json=PARAMS)

        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "generation_failed"
        assert body["retryable"] is True
        (draft,) = await store.list_for_owner(OWNER)
        assert draft.status == "draft"

    @pytest.mark.asyncio
    async def test_missing_ai_keys(self, store, storage, persister):
        services = Services(
            Settings(anthropic_api_key="", google_ai_api_key=""),
            store=store,
            storage=storage,
            persister=persister,
        )
        app.dependency_overrides[get_services] = lambda: services
        try:
            async with httpx.AsyncClient(
                transport=httpx.ASGITransport(app=app), base_url="http://test"
            ) as c:
                resp = await c.post("/api/v1/projects", headers=AUTH, json=PARAMS)
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 500
        assert resp.json()["error"] == "configuration_error"
        assert await store.list_for_owner(OWNER) == []


class TestListProjects:
    """GET /api/v1/projects"""

    @pytest.mark.asyncio
    async def test_lists_own_projects_newest_first(self, client):
        await _create(client, json={**PARAMS, "name": "First"})
        await _create(client, json={**PARAMS, "name": "Second"})
        await _create(client, headers={"X-User-Id": "someone-else"}, json=PARAMS)

        resp = await client.get("/api/v1/projects", headers=AUTH)

        assert resp.status_code == 200
        names = [p["name"] for p in resp.json()["projects"]]
        assert names == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_limit(self, client):
        for i in range(3):
            await _create(client, json={**PARAMS, "name": f"P{i}"})
        resp = await client.get("/api/v1/projects?limit=2", headers=AUTH)
        assert len(resp.json()["projects"]) == 2

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        assert (await client.get("/api/v1/projects")).status_code == 401


class TestGetProject:
    """GET /api/v1/projects/{id}"""

    @pytest.mark.asyncio
    async def test_owner_can_read(self, client):
        project_id = (await _create(client, json=PARAMS)).json()["id"]
        resp = await client.get(f"/api/v1/projects/{project_id}", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["id"] == project_id

    @pytest.mark.asyncio
    async def test_other_user_forbidden(self, client):
        project_id = (await _create(client, json=PARAMS)).json()["id"]
        resp = await client.get(
            f"/api/v1/projects/{project_id}", headers={"X-User-Id": "intruder"}
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_not_found(self, client):
        resp = await client.get("/api/v1/projects/does-not-exist", headers=AUTH)
        assert resp.status_code == 404
        assert resp.json()["error"] == "project_not_found"


class TestProjectPdf:
    """GET /api/v1/projects/{id}/pdf"""

    @pytest.mark.asyncio
    async def test_download(self, client, png_bytes):
        created = (await _create(client, files=_multipart(PARAMS, png_bytes))).json()

        with patch(
            "app.api.routes.projects.download_images_best_effort",
            new_callable=AsyncMock,
            return_value={},
        ) as download:
            resp = await client.get(f"/api/v1/projects/{created['id']}/pdf", headers=AUTH)

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["content-disposition"] == (
            'attachment; filename="back_garden_report.pdf"'
        )
        assert resp.content.startswith(b"%PDF")
        urls = download.call_args.args[0]
        assert urls[0] == created["originalImage"]
        assert urls[1:] == created["generatedImages"][:2]

    @pytest.mark.asyncio
    async def test_forbidden_for_other_user(self, client):
        project_id = (await _create(client, json=PARAMS)).json()["id"]
        resp = await client.get(
            f"/api/v1/projects/{project_id}/pdf", headers={"X-User-Id": "intruder"}
        )
        assert resp.status_code == 403
