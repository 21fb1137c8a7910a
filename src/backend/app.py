from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .downloader import ContentFetcher
from .fs import TaskStorageManager
from .settings.models import ServerSettings
from .settings.store import load_settings
from .tasks import (
    AdmissionController,
    ArchiveManager,
    DownloadOrchestrator,
    TaskRegistry,
    create_task_router,
)
from .tasks.orchestrator import Fetcher


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def create_app(
    settings: Optional[ServerSettings] = None,
    *,
    fetcher: Optional[Fetcher] = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()

    download_root = Path(settings.download_root)
    if not download_root.is_absolute():
        download_root = _repo_root() / download_root

    storage = TaskStorageManager(download_root=download_root)
    registry = TaskRegistry()
    admission = AdmissionController(
        registry=registry,
        storage=storage,
        max_active=settings.max_active_tasks,
    )
    archive = ArchiveManager(
        registry=registry,
        storage=storage,
        admission=admission,
        cleanup_grace_s=settings.cleanup_grace_s,
        unclaimed_ttl_s=settings.unclaimed_ttl_s,
        idle_ttl_s=settings.idle_ttl_s,
    )
    if fetcher is None:
        fetcher = ContentFetcher(
            allowed_content_types=settings.allowed_content_types,
            timeout_s=settings.request_timeout_s,
            retry=settings.get_retry(),
        )
    orchestrator = DownloadOrchestrator(
        registry=registry,
        fetcher=fetcher,
        archive=archive,
        max_files=settings.max_files_per_task,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await archive.aclose()

    app = FastAPI(title="task-bundle-server", lifespan=lifespan)
    app.include_router(
        create_task_router(
            admission=admission,
            registry=registry,
            orchestrator=orchestrator,
            archive=archive,
        )
    )

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "status": "ok",
            "activeTasks": admission.gate.in_use,
            "maxActiveTasks": admission.max_active,
        }

    app.state.settings = settings
    app.state.storage = storage
    app.state.registry = registry
    app.state.admission = admission
    app.state.archive = archive
    app.state.orchestrator = orchestrator
    return app
