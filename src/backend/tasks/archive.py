"""
Archive & cleanup management for tasks.

Packaging runs as one asyncio task per task id, shared by every caller that
asks for the archive while it is being built. Cleanup timers are tracked per
task as well, so failures in either are logged instead of lost.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Optional

from src.backend.fs.archive_zip import build_task_archive
from src.backend.fs.storage import TaskStorageManager
from src.shared.task_status import TaskStatus

from .admission import AdmissionController
from .errors import PackagingError, TaskError, TaskNotFound, TaskNotReady
from .registry import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_GRACE_S = 15.0
DEFAULT_UNCLAIMED_TTL_S = 600.0
DEFAULT_IDLE_TTL_S = 600.0


class ArchiveManager:
    def __init__(
        self,
        *,
        registry: TaskRegistry,
        storage: TaskStorageManager,
        admission: AdmissionController,
        cleanup_grace_s: float = DEFAULT_CLEANUP_GRACE_S,
        unclaimed_ttl_s: float = DEFAULT_UNCLAIMED_TTL_S,
        idle_ttl_s: float = DEFAULT_IDLE_TTL_S,
    ) -> None:
        self._registry = registry
        self._storage = storage
        self._admission = admission
        self._cleanup_grace_s = cleanup_grace_s
        self._unclaimed_ttl_s = unclaimed_ttl_s
        self._idle_ttl_s = idle_ttl_s

        self._packaging: dict[str, asyncio.Task[Path]] = {}
        self._cleanups: dict[str, asyncio.Task[None]] = {}

    @property
    def cleanup_grace_s(self) -> float:
        return self._cleanup_grace_s

    def pending_cleanups(self) -> list[str]:
        return [tid for tid, t in self._cleanups.items() if not t.done()]

    # ---------------------------------------------------------------------
    # Packaging
    # ---------------------------------------------------------------------

    def request_package(self, task_id: str) -> "asyncio.Task[Path]":
        """
        Start packaging ``task_id`` unless a run is already in progress.

        Returns the shared completion task; its result is the archive path.
        """
        job = self._packaging.get(task_id)
        if job is not None:
            return job

        job = asyncio.create_task(self._package(task_id), name=f"package-{task_id}")
        self._packaging[task_id] = job
        job.add_done_callback(partial(self._on_package_done, task_id))
        return job

    async def package(self, task_id: str) -> Path:
        """
        Return the archive of a full task, building it if needed.

        Raises:
            TaskNotFound: unknown id.
            TaskNotReady: the task has not reached its file limit.
            PackagingError: the archive could not be written; the task is kept.
        """
        task = await self._registry.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if task.status == TaskStatus.CREATED:
            raise TaskNotReady(task_id)
        if task.status == TaskStatus.DONE and task.archive_path and task.archive_path.exists():
            return task.archive_path

        # A disconnecting client must not cancel the run other callers share.
        return await asyncio.shield(self.request_package(task_id))

    async def _package(self, task_id: str) -> Path:
        task = await self._registry.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        if task.status == TaskStatus.CREATED:
            raise TaskNotReady(task_id)
        if task.status == TaskStatus.DONE and task.archive_path and task.archive_path.exists():
            return task.archive_path

        paths = self._storage.get_task_paths(task_id)
        try:
            result = await asyncio.to_thread(build_task_archive, task.files, paths.archive)
        except OSError as exc:
            raise PackagingError(task_id, str(exc)) from exc

        try:
            await self._registry.set_archive_path(task_id, result.zip_path)
        except TaskNotFound:
            # Removed while packaging: the archive has no owner left.
            result.zip_path.unlink(missing_ok=True)
            raise

        await self._registry.compare_and_set_status(
            task_id, expected=TaskStatus.FULL, new=TaskStatus.DONE
        )
        logger.info(
            "Packaged task %s: %d files, %d bytes",
            task_id,
            result.files_archived,
            result.bytes_archived,
        )

        self.schedule_cleanup(task_id, self._unclaimed_ttl_s)
        return result.zip_path

    def _on_package_done(self, task_id: str, job: "asyncio.Task[Path]") -> None:
        if self._packaging.get(task_id) is job:
            self._packaging.pop(task_id, None)
        if job.cancelled():
            return
        exc = job.exception()
        if isinstance(exc, PackagingError):
            logger.error("Packaging of task %s failed: %s", task_id, exc.cause)
        elif isinstance(exc, TaskError):
            logger.info("Packaging of task %s skipped: %s", task_id, exc.message)
        elif exc is not None:
            logger.error("Packaging of task %s crashed", task_id, exc_info=exc)

    # ---------------------------------------------------------------------
    # Cleanup
    # ---------------------------------------------------------------------

    def schedule_delivery_cleanup(self, task_id: str) -> "asyncio.Task[None]":
        return self.schedule_cleanup(task_id, self._cleanup_grace_s)

    def schedule_idle_cleanup(self, task_id: str) -> "asyncio.Task[None]":
        """Purge a task that receives no further uploads within ``idle_ttl_s``."""
        return self.schedule_cleanup(task_id, self._idle_ttl_s)

    def schedule_cleanup(self, task_id: str, delay_s: float) -> "asyncio.Task[None]":
        """(Re)arm the purge timer of a task; an earlier timer is replaced."""
        previous = self._cleanups.pop(task_id, None)
        if previous is not None and not previous.done():
            previous.cancel()

        timer = asyncio.create_task(self._cleanup_later(task_id, delay_s), name=f"cleanup-{task_id}")
        self._cleanups[task_id] = timer
        timer.add_done_callback(partial(self._on_cleanup_done, task_id))
        logger.debug("Task %s will be removed in %.1fs", task_id, delay_s)
        return timer

    async def _cleanup_later(self, task_id: str, delay_s: float) -> None:
        if delay_s > 0:
            await asyncio.sleep(delay_s)
        await self.remove(task_id)

    def _on_cleanup_done(self, task_id: str, timer: "asyncio.Task[None]") -> None:
        if self._cleanups.get(task_id) is timer:
            self._cleanups.pop(task_id, None)
        if timer.cancelled():
            return
        exc = timer.exception()
        if exc is not None:
            logger.error("Cleanup of task %s failed", task_id, exc_info=exc)

    async def remove(self, task_id: str) -> bool:
        """
        Delete a task, its working directory and its archive.

        Idempotent: only the caller that takes the record out of the registry
        touches the filesystem and returns the admission slot.

        Returns:
            True if this call removed the task.
        """
        task = await self._registry.delete(task_id)
        self._cancel_timer(task_id)
        if task is None:
            return False

        try:
            await asyncio.to_thread(self._storage.remove_task_files, task_id)
        except OSError as exc:
            logger.error("Failed to delete files of task %s: %s", task_id, exc)
        finally:
            # Exactly once per task, even when deleting files failed
            self._admission.release(task_id)
        logger.info("Removed task %s", task_id)
        return True

    def _cancel_timer(self, task_id: str) -> None:
        timer: Optional[asyncio.Task[None]] = self._cleanups.pop(task_id, None)
        if timer is None or timer.done() or timer is asyncio.current_task():
            return
        timer.cancel()

    async def aclose(self) -> None:
        """Cancel pending packaging runs and timers (server shutdown)."""
        pending = [t for t in (*self._packaging.values(), *self._cleanups.values()) if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._packaging.clear()
        self._cleanups.clear()
