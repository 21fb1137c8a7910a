"""
API routes for the task lifecycle: create, upload, status, download, remove.
"""

from __future__ import annotations

from typing import NoReturn, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from src.shared.task_status import TaskStatus

from .admission import AdmissionController
from .archive import ArchiveManager
from .errors import TaskError
from .orchestrator import DownloadOrchestrator
from .registry import TaskRegistry


class TaskCreatedOut(BaseModel):
    status: TaskStatus
    id: str


class TaskStatusOut(BaseModel):
    id: str
    fileCount: int
    status: TaskStatus
    isFull: bool


class UploadOut(BaseModel):
    message: str
    id: str
    fileCount: int
    isFull: bool
    download: Optional[str] = None


class MessageOut(BaseModel):
    message: str


def _raise_http(exc: TaskError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc


def create_task_router(
    *,
    admission: AdmissionController,
    registry: TaskRegistry,
    orchestrator: DownloadOrchestrator,
    archive: ArchiveManager,
) -> APIRouter:
    """
    Create the task API router.

    Args:
        admission: Gate for new tasks.
        registry: Shared task state.
        orchestrator: Runs upload submissions.
        archive: Packages full tasks and purges finished ones.

    Returns:
        FastAPI router with task endpoints.
    """
    router = APIRouter(prefix="/task", tags=["task"])

    @router.api_route("", methods=["GET", "POST"], response_model=TaskCreatedOut)
    async def create_task() -> TaskCreatedOut:
        """Admit a new task, or answer 503 while the active-task ceiling is reached."""
        try:
            task = await admission.try_admit()
        except TaskError as exc:
            _raise_http(exc)
        archive.schedule_idle_cleanup(task.task_id)
        return TaskCreatedOut(status=task.status, id=task.task_id)

    @router.api_route("/{task_id}/upload", methods=["GET", "POST"], response_model=UploadOut)
    async def upload_files(task_id: str, file: list[str] = Query(default=[])) -> UploadOut:
        """
        Fetch 1-3 remote files into the task.

        Once the task holds all of its files, packaging starts in the
        background and ``download`` points at the archive.
        """
        try:
            result = await orchestrator.submit(task_id, file)
        except TaskError as exc:
            _raise_http(exc)

        return UploadOut(
            message="files uploaded",
            id=result.task_id,
            fileCount=result.file_count,
            isFull=result.is_full,
            download=str(router.url_path_for("download_archive", task_id=task_id)) if result.is_full else None,
        )

    @router.get("/{task_id}/status", response_model=TaskStatusOut)
    @router.get("/{task_id}", response_model=TaskStatusOut)
    async def get_status(task_id: str) -> TaskStatusOut:
        try:
            status = await registry.get_status(task_id)
        except TaskError as exc:
            _raise_http(exc)
        return TaskStatusOut(**status)

    @router.get("/{task_id}/download", name="download_archive")
    async def download_archive(task_id: str) -> FileResponse:
        """
        Send the task archive as an attachment.

        The task and its files are purged a grace period after delivery.
        """
        try:
            archive_path = await archive.package(task_id)
        except TaskError as exc:
            _raise_http(exc)

        async def _after_delivery() -> None:
            archive.schedule_delivery_cleanup(task_id)

        return FileResponse(
            archive_path,
            media_type="application/zip",
            filename=archive_path.name,
            background=BackgroundTask(_after_delivery),
        )

    @router.delete("/{task_id}", response_model=MessageOut)
    async def remove_task(task_id: str) -> MessageOut:
        """Idempotent: answers 200 whether or not the task still existed."""
        await archive.remove(task_id)
        return MessageOut(message="files removed successfully")

    return router
