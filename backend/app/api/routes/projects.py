"""Project API endpoints.

Create runs the whole generation pipeline inside the request and returns the
completed project. Read endpoints enforce ownership: 404 when the project
doesn't exist, 403 when it belongs to someone else.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, Query, Request, UploadFile
from fastapi.responses import Response

from app.activities.report import MAX_GENERATED_IMAGES, render_report, report_filename
from app.config import settings
from app.dependencies import Services, get_owner_id, get_services
from app.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.contracts import ErrorResponse, Project, ProjectListResponse
from app.utils.http import download_images_best_effort
from app.workflows.create_project import UploadedImage, check_image, parse_design_params

logger = structlog.get_logger()

router = APIRouter(tags=["projects"])

_READ_CHUNK = 65_536

_ERRORS: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (401, 403, 404, 413, 422, 500, 502)
}


# --- Request decoding ---


@dataclass(frozen=True)
class JsonCreateBody:
    form_input: dict[str, Any]
    kind: Literal["json"] = "json"


@dataclass(frozen=True)
class MultipartCreateBody:
    form_input: dict[str, Any]
    image: UploadedImage | None
    kind: Literal["multipart"] = "multipart"


CreateProjectBody = JsonCreateBody | MultipartCreateBody


def _as_object(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValidationError("Project data must be a JSON object", code="invalid_project_data")
    return raw


async def _read_capped(file: UploadFile) -> bytes:
    # Stream-read with early termination to avoid buffering unbounded uploads
    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(_READ_CHUNK):
        total += len(chunk)
        if total > settings.max_upload_bytes:
            mb = settings.max_upload_bytes // (1024 * 1024)
            raise ValidationError(
                f"Image exceeds {mb} MB limit", code="file_too_large", status_code=413
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def decode_create_body(request: Request) -> CreateProjectBody:
    """Resolve the create request into one of the two supported shapes."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type == "application/json":
        try:
            raw = await request.json()
        except ValueError as exc:
            raise ValidationError("Request body is not valid JSON", code="invalid_json") from exc
        return JsonCreateBody(form_input=_as_object(raw))

    if content_type == "multipart/form-data":
        form = await request.form()
        data = form.get("data")
        if not isinstance(data, str):
            raise ValidationError("Missing 'data' form field", code="invalid_project_data")
        try:
            form_input = _as_object(json.loads(data))
        except ValueError as exc:
            raise ValidationError(
                "'data' form field is not valid JSON", code="invalid_project_data"
            ) from exc

        image: UploadedImage | None = None
        upload = form.get("image")
        if upload is not None and not isinstance(upload, str):
            image = UploadedImage(
                data=await _read_capped(upload),
                filename=upload.filename or "photo.jpg",
                content_type=upload.content_type,
            )
        return MultipartCreateBody(form_input=form_input, image=image)

    raise ValidationError(
        "Expected multipart/form-data or application/json",
        code="unsupported_content_type",
        status_code=415,
    )


# --- Project lifecycle ---


@router.post("/projects", status_code=201, response_model=Project, responses=_ERRORS)
async def create_project(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> Project:
    """Create a project and run generation. Returns the completed project."""
    body = await decode_create_body(request)
    image = body.image if isinstance(body, MultipartCreateBody) else None

    # Validate before any service is constructed
    params = parse_design_params(body.form_input)
    if image is not None:
        check_image(image)

    project = await services.orchestrator.create_project(owner_id, params, image)
    logger.info(
        "project_created",
        project_id=project.id,
        body_kind=body.kind,
        has_image=image is not None,
    )
    return project


@router.get("/projects", response_model=ProjectListResponse, responses=_ERRORS)
async def list_projects(
    limit: int | None = Query(default=None, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> ProjectListResponse:
    """The caller's projects, newest first."""
    projects = await services.store.list_for_owner(owner_id, limit=limit)
    return ProjectListResponse(projects=projects)


async def _owned_project(services: Services, project_id: str, owner_id: str) -> Project:
    project = await services.store.get(project_id)
    if project is None:
        raise NotFoundError()
    if project.owner_id != owner_id:
        logger.warning("project_access_denied", project_id=project_id)
        raise ForbiddenError()
    return project


@router.get("/projects/{project_id}", response_model=Project, responses=_ERRORS)
async def get_project(
    project_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> Project:
    return await _owned_project(services, project_id, owner_id)


@router.get(
    "/projects/{project_id}/pdf",
    response_class=Response,
    responses={**_ERRORS, 200: {"content": {"application/pdf": {}}}},
)
async def download_report(
    project_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> Response:
    """Render the project report. Images that can't be fetched are left out."""
    project = await _owned_project(services, project_id, owner_id)

    urls = (project.generated_images or [])[:MAX_GENERATED_IMAGES]
    if project.original_image:
        urls = [project.original_image, *urls]
    images = await download_images_best_effort(urls)

    pdf = await asyncio.to_thread(render_report, project, images)
    filename = report_filename(project.name)
    logger.info("report_downloaded", project_id=project_id, size_bytes=len(pdf))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
