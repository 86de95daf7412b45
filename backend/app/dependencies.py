"""FastAPI dependencies: the service container and the caller's identity.

Clients are built lazily on first use, so a missing credential fails the
request that needs it (StorageError / ConfigurationError) rather than the
process. Tests swap the whole container via ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import cached_property

import structlog
from fastapi import Request

from app.activities.generate import GenerativeDesignClient
from app.activities.persist import AssetPersister
from app.config import Settings, settings
from app.errors import AuthError
from app.utils.project_store import InMemoryProjectStore, ProjectStore, SqlProjectStore
from app.utils.r2 import ObjectStorage
from app.workflows.create_project import ProjectOrchestrator

logger = structlog.get_logger()


class Services:
    def __init__(
        self,
        settings: Settings,
        *,
        store: ProjectStore | None = None,
        storage: ObjectStorage | None = None,
        generator: GenerativeDesignClient | None = None,
        persister: AssetPersister | None = None,
    ) -> None:
        self.settings = settings
        # Pre-seeded entries win over the lazy builders below
        for name, value in (
            ("store", store),
            ("storage", storage),
            ("generator", generator),
            ("persister", persister),
        ):
            if value is not None:
                self.__dict__[name] = value

    @cached_property
    def store(self) -> ProjectStore:
        if self.settings.project_store == "postgres":
            logger.info("project_store_selected", backend="postgres")
            return SqlProjectStore.from_url(self.settings.database_url)
        logger.info("project_store_selected", backend="memory")
        return InMemoryProjectStore()

    @cached_property
    def storage(self) -> ObjectStorage:
        return ObjectStorage.from_settings(self.settings)

    @cached_property
    def generator(self) -> GenerativeDesignClient:
        return GenerativeDesignClient.from_settings(self.settings)

    @cached_property
    def persister(self) -> AssetPersister:
        return AssetPersister(self.storage)

    @cached_property
    def orchestrator(self) -> ProjectOrchestrator:
        # Generator first: missing AI keys are reported before storage config
        generator = self.generator
        return ProjectOrchestrator(self.store, self.storage, generator, self.persister)

    async def close(self) -> None:
        store = self.__dict__.get("store")
        if isinstance(store, SqlProjectStore):
            await store.dispose()


_services: Services | None = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = Services(settings)
    return _services


async def close_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None


def get_owner_id(request: Request) -> str:
    """Caller's user id, forwarded by the session provider in front of the API."""
    owner_id = request.headers.get(settings.auth_user_header, "").strip()
    if not owner_id:
        raise AuthError()
    structlog.contextvars.bind_contextvars(owner_id=owner_id)
    return owner_id
