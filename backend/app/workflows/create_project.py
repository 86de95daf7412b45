"""ProjectOrchestrator — the create-project use case, end to end.

validate -> upload photo -> draft record -> generate -> estimate ->
re-host images -> finalize.

The draft/finalize split is the consistency boundary: a request that dies
anywhere after the draft is written leaves a ``draft`` project behind, and
every derived field lands in a single ``finalize`` call.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import pydantic
import structlog

from app.activities.estimate import estimate_materials
from app.activities.generate import GenerativeDesignClient
from app.activities.persist import AssetPersister
from app.errors import ProjectCreationError, ValidationError, YardSketchError
from app.models.contracts import DesignParams, Project, ProjectCompletion
from app.utils.http import sniff_image_type
from app.utils.project_store import ProjectStore
from app.utils.r2 import ObjectStorage, storage_key

logger = structlog.get_logger()

UPLOAD_SCOPE = "uploads"


@dataclass(frozen=True)
class UploadedImage:
    data: bytes
    filename: str = "photo.jpg"
    content_type: str | None = None


def describe_validation_errors(errors: list[Any]) -> str:
    """Flatten pydantic error dicts into one ``loc: msg; ...`` line."""
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def parse_design_params(form_input: dict[str, Any] | DesignParams) -> DesignParams:
    if isinstance(form_input, DesignParams):
        return form_input
    try:
        return DesignParams.model_validate(form_input)
    except pydantic.ValidationError as exc:
        raise ValidationError(describe_validation_errors(exc.errors())) from exc


def check_image(image: UploadedImage) -> str:
    """Return the sniffed MIME type; reject anything Pillow can't read."""
    if not image.data:
        raise ValidationError("Uploaded image is empty", code="invalid_image")
    content_type = sniff_image_type(image.data)
    if content_type is None:
        raise ValidationError(
            "Could not open image. Please upload a valid JPEG or PNG.",
            code="invalid_image",
        )
    return content_type


class ProjectOrchestrator:
    def __init__(
        self,
        store: ProjectStore,
        storage: ObjectStorage,
        generator: GenerativeDesignClient,
        persister: AssetPersister,
    ) -> None:
        self.store = store
        self.storage = storage
        self.generator = generator
        self.persister = persister

    async def create_project(
        self,
        owner_id: str,
        form_input: dict[str, Any] | DesignParams,
        image: UploadedImage | None = None,
    ) -> Project:
        """Run the whole pipeline and return the completed project.

        Raises ValidationError before any side effect, StorageError if the
        photo upload fails (nothing is written), GenerationError with the
        draft left in place, and ProjectCreationError for anything else.
        """
        # --- Phase: Validate (no side effects before this passes) ---
        params = parse_design_params(form_input)
        content_type = check_image(image) if image is not None else None

        log = logger.bind(owner_id=owner_id)
        try:
            return await self._run(log, owner_id, params, image, content_type)
        except YardSketchError:
            raise
        except Exception as exc:
            log.exception("project_creation_failed", error_type=type(exc).__name__)
            raise ProjectCreationError(detail=f"{type(exc).__name__}: {exc}"[:300]) from exc

    async def _run(
        self,
        log: Any,
        owner_id: str,
        params: DesignParams,
        image: UploadedImage | None,
        content_type: str | None,
    ) -> Project:
        # --- Phase: Upload ---
        original_url: str | None = None
        if image is not None and content_type is not None:
            key = storage_key(UPLOAD_SCOPE, owner_id, image.filename)
            original_url = await self.storage.store_public(key, image.data, content_type)
            log.info("original_image_uploaded", key=key, size_bytes=len(image.data))

        # --- Phase: Draft ---
        now = datetime.now(UTC)
        draft = await self.store.create(
            Project(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                status="draft",
                **params.model_dump(),
                original_image=original_url,
                created_at=now,
                updated_at=now,
            )
        )
        log = log.bind(project_id=draft.id)
        log.info("project_draft_created", has_image=original_url is not None)

        # --- Phase: Generate (GenerationError leaves the draft in place) ---
        start = asyncio.get_running_loop().time()
        result = await self.generator.generate(params, original_url)
        log.info(
            "project_generated",
            thesis_chars=len(result.design_thesis),
            images=len(result.generated_images),
            image_aware=result.image_analysis is not None,
            duration_ms=round((asyncio.get_running_loop().time() - start) * 1000),
        )

        # --- Phase: Estimate + re-host ---
        estimate = estimate_materials(result.design_thesis)
        durable_images = await self.persister.persist(
            result.generated_images, owner_id, draft.id
        )

        # --- Phase: Finalize ---
        completed = await self.store.finalize(
            draft.id,
            ProjectCompletion(
                design_thesis=result.design_thesis,
                generated_images=durable_images,
                materials_list=list(estimate.items),
                total_cost=estimate.total,
                image_analysis=result.image_analysis,
            ),
        )
        log.info(
            "project_completed",
            materials=len(estimate.items),
            total_cost=estimate.total,
            images=len(durable_images),
        )
        return completed
