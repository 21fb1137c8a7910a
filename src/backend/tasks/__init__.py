"""
Task lifecycle: admission, shared state, download fan-out, packaging and cleanup.

Provides:
- TaskRegistry: lock-guarded task store (registry.py)
- AdmissionController / AdmissionGate: active-task ceiling (admission.py)
- DownloadOrchestrator: per-submission fan-out/fan-in (orchestrator.py)
- ArchiveManager: packaging and deferred cleanup (archive.py)
- Task API router (api.py, imported lazily)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .admission import AdmissionController, AdmissionGate
from .archive import ArchiveManager
from .models import SubmitResult, Task
from .orchestrator import DownloadOrchestrator
from .registry import TaskRegistry

if TYPE_CHECKING:
    from fastapi import APIRouter  # pragma: no cover


def create_task_router(
    *,
    admission: AdmissionController,
    registry: TaskRegistry,
    orchestrator: DownloadOrchestrator,
    archive: ArchiveManager,
) -> "APIRouter":
    """
    Lazily import FastAPI router to keep non-web imports lightweight.
    """
    from .api import create_task_router as _create_task_router

    return _create_task_router(
        admission=admission,
        registry=registry,
        orchestrator=orchestrator,
        archive=archive,
    )


__all__ = [
    "AdmissionController",
    "AdmissionGate",
    "ArchiveManager",
    "DownloadOrchestrator",
    "SubmitResult",
    "Task",
    "TaskRegistry",
    "create_task_router",
]
