"""Error taxonomy shared by the pipeline and the HTTP layer.

Every error carries a stable ``code``, the HTTP status it maps to, a message
that is safe to show to the user, and whether a retry might succeed. The
exception handlers in ``app.main`` turn these into ``ErrorResponse`` JSON.
"""

from __future__ import annotations

from typing import Literal

GenerationStage = Literal["narrative", "image"]


class YardSketchError(Exception):
    code = "internal_error"
    status_code = 500
    retryable = False
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(YardSketchError):
    """Missing or malformed input. Raised before any side effect."""

    code = "validation_error"
    status_code = 422
    default_message = "Invalid project input"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class AuthError(YardSketchError):
    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(YardSketchError):
    code = "forbidden"
    status_code = 403
    default_message = "Access denied"


class NotFoundError(YardSketchError):
    code = "project_not_found"
    status_code = 404
    default_message = "Project not found"


class StorageError(YardSketchError):
    code = "storage_error"
    retryable = True
    default_message = "File storage failed. Please try again."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        retryable: bool | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message, detail=detail)
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable

    @classmethod
    def not_configured(cls, missing: list[str]) -> StorageError:
        return cls(
            "File storage is not configured. Please contact support.",
            code="storage_not_configured",
            retryable=False,
            detail=f"missing settings: {', '.join(missing)}",
        )


class GenerationError(YardSketchError):
    """A generative stage exhausted every fallback."""

    code = "generation_failed"
    status_code = 502
    retryable = True
    default_message = "The design service could not generate your proposal. Please try again."

    def __init__(self, stage: GenerationStage, cause: BaseException | str) -> None:
        self.stage = stage
        self.cause = cause
        cause_text = cause if isinstance(cause, str) else f"{type(cause).__name__}: {cause}"
        super().__init__(detail=f"{stage}: {cause_text}"[:300])


class ConfigurationError(YardSketchError):
    code = "configuration_error"
    default_message = "The design service is not configured. Please contact support."

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(detail=f"missing settings: {', '.join(missing)}")


class ProjectStateError(YardSketchError):
    code = "project_not_draft"
    status_code = 409
    default_message = "Project has already been finalized"


class ProjectCreationError(YardSketchError):
    """Unclassified failure surfaced at the top of the creation workflow."""

    code = "project_creation_failed"
    retryable = True
    default_message = "Failed to create project"
