"""Project persistence: in-memory store for development/tests, SQL store for prod.

Both stores enforce the same lifecycle rule: ``finalize`` only succeeds on a
project that is still ``draft``, so a project is never completed twice.
Access control (owner checks) happens in the API layer; the stores only
filter listings by owner.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Protocol

import structlog
from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.errors import NotFoundError, ProjectStateError
from app.models.contracts import MaterialLineItem, Project, ProjectCompletion
from app.models.db import ProjectRow

logger = structlog.get_logger()


class ProjectStore(Protocol):
    async def create(self, project: Project) -> Project: ...

    async def get(self, project_id: str) -> Project | None: ...

    async def list_for_owner(self, owner_id: str, limit: int | None = None) -> list[Project]: ...

    async def finalize(self, project_id: str, completion: ProjectCompletion) -> Project: ...


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryProjectStore:
    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}
        self._lock = asyncio.Lock()

    async def create(self, project: Project) -> Project:
        async with self._lock:
            self._projects[project.id] = project
        return project

    async def get(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    async def list_for_owner(self, owner_id: str, limit: int | None = None) -> list[Project]:
        owned = [p for p in self._projects.values() if p.owner_id == owner_id]
        owned.sort(key=lambda p: p.created_at, reverse=True)
        return owned[:limit] if limit is not None else owned

    async def finalize(self, project_id: str, completion: ProjectCompletion) -> Project:
        async with self._lock:
            current = self._projects.get(project_id)
            if current is None:
                raise NotFoundError()
            if current.status != "draft":
                raise ProjectStateError(detail=f"status={current.status}")
            finalized = current.model_copy(
                update={
                    **completion.model_dump(exclude={"materials_list"}),
                    "materials_list": list(completion.materials_list),
                    "status": "completed",
                    "updated_at": _now(),
                }
            )
            self._projects[project_id] = finalized
        return finalized


def _row_to_project(row: ProjectRow) -> Project:
    return Project(
        id=row.id,
        owner_id=row.owner_id,
        status=row.status,  # type: ignore[arg-type]
        name=row.name,
        climate_zone=row.climate_zone,
        sun_exposure=row.sun_exposure,  # type: ignore[arg-type]
        square_footage=row.square_footage,
        design_style=row.design_style,  # type: ignore[arg-type]
        budget=row.budget,
        notes=row.notes,
        original_image=row.original_image,
        design_thesis=row.design_thesis,
        generated_images=row.generated_images,
        materials_list=(
            [MaterialLineItem.model_validate(item) for item in row.materials_list]
            if row.materials_list is not None
            else None
        ),
        total_cost=row.total_cost,
        image_analysis=row.image_analysis,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def finalize_statement(project_id: str, completion: ProjectCompletion) -> Update:
    """UPDATE ... RETURNING that only matches a row still in ``draft``.

    Two concurrent finalizers can't both win: the loser's UPDATE matches no row.
    """
    return (
        update(ProjectRow)
        .where(ProjectRow.id == project_id, ProjectRow.status == "draft")
        .values(
            status="completed",
            design_thesis=completion.design_thesis,
            generated_images=completion.generated_images,
            materials_list=[item.model_dump(by_alias=True) for item in completion.materials_list],
            total_cost=completion.total_cost,
            image_analysis=completion.image_analysis,
            updated_at=_now(),
        )
        .returning(ProjectRow)
    )


class SqlProjectStore:
    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> SqlProjectStore:
        return cls(create_async_engine(database_url, pool_pre_ping=True))

    async def create(self, project: Project) -> Project:
        row = ProjectRow(
            id=project.id,
            owner_id=project.owner_id,
            status=project.status,
            name=project.name,
            climate_zone=project.climate_zone,
            sun_exposure=project.sun_exposure,
            square_footage=project.square_footage,
            design_style=project.design_style,
            budget=project.budget,
            notes=project.notes,
            original_image=project.original_image,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )
        async with self._sessions.begin() as session:
            session.add(row)
        return project

    async def get(self, project_id: str) -> Project | None:
        async with self._sessions() as session:
            row = await session.get(ProjectRow, project_id)
            return _row_to_project(row) if row is not None else None

    async def list_for_owner(self, owner_id: str, limit: int | None = None) -> list[Project]:
        stmt = (
            select(ProjectRow)
            .where(ProjectRow.owner_id == owner_id)
            .order_by(ProjectRow.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._sessions() as session:
            rows = (await session.scalars(stmt)).all()
        return [_row_to_project(row) for row in rows]

    async def finalize(self, project_id: str, completion: ProjectCompletion) -> Project:
        stmt = finalize_statement(project_id, completion)
        async with self._sessions.begin() as session:
            row = (await session.scalars(stmt)).one_or_none()
            if row is None:
                existing = await session.get(ProjectRow, project_id)
                if existing is None:
                    raise NotFoundError()
                raise ProjectStateError(detail=f"status={existing.status}")
            project = _row_to_project(row)
        logger.info("project_row_finalized", project_id=project_id)
        return project

    async def dispose(self) -> None:
        await self._engine.dispose()
