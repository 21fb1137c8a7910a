from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from src.backend.fs.naming import resolve_collision
from src.shared.task_status import TaskStatus

from .errors import InvalidTransition, TaskAlreadyFull, TaskFull, TaskNotFound
from .models import Task, utc_now

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    In-memory task store guarded by one lock.

    - Every read and write of task fields happens under ``_lock``
    - The lock is never held across network I/O
    - Callers only ever see detached snapshots of Task records
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tasks: dict[str, Task] = {}
        self._issued_ids: set[str] = set()

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    @asynccontextmanager
    async def locked(self) -> AsyncIterator["TaskRegistry"]:
        """Hold the registry lock; use the ``*_locked`` methods inside."""
        async with self._lock:
            yield self

    async def put(self, task: Task) -> None:
        async with self._lock:
            self.put_locked(task)

    async def get(self, task_id: str) -> Optional[Task]:
        async with self._lock:
            task = self._tasks.get(task_id)
            return task.snapshot() if task else None

    async def delete(self, task_id: str) -> Optional[Task]:
        """Remove a task; only the first caller gets the record back."""
        async with self._lock:
            return self._tasks.pop(task_id, None)

    async def count(self) -> int:
        async with self._lock:
            return len(self._tasks)

    async def get_status(self, task_id: str) -> dict[str, Any]:
        async with self._lock:
            return self._require_locked(task_id).to_status_dict()

    async def ensure_accepting(self, task_id: str) -> Task:
        """
        Raise unless the task exists and still has room for files.

        Raises:
            TaskNotFound: unknown id.
            TaskAlreadyFull: the task was latched full.
        """
        async with self._lock:
            task = self._require_locked(task_id)
            if task.is_full or task.status != TaskStatus.CREATED:
                raise TaskAlreadyFull(task_id)
            return task.snapshot()

    async def ensure_room(self, task_id: str, cap: int, *, url: Optional[str] = None) -> None:
        """Raise TaskFull if no slot is left for another file."""
        async with self._lock:
            task = self._require_locked(task_id)
            if task.is_full or task.file_count >= cap:
                raise TaskFull(task_id, url)

    async def compare_and_set_status(
        self,
        task_id: str,
        *,
        expected: TaskStatus,
        new: TaskStatus,
    ) -> bool:
        """
        Move a task from ``expected`` to ``new``.

        Returns False when the task is not in ``expected`` (someone else won).

        Raises:
            TaskNotFound: unknown id.
            InvalidTransition: ``expected -> new`` is not a lifecycle step.
        """
        async with self._lock:
            task = self._require_locked(task_id)
            if task.status != expected:
                return False
            self._transition_locked(task, new)
            return True

    async def set_archive_path(self, task_id: str, archive_path: Optional[Path]) -> None:
        async with self._lock:
            task = self._require_locked(task_id)
            task.archive_path = archive_path
            task.updated_at = utc_now()

    async def commit_file(
        self,
        task_id: str,
        *,
        staged_path: Path,
        filename: str,
        cap: int,
        url: Optional[str] = None,
    ) -> tuple[Path, bool]:
        """
        Move a staged download into the task and append it to ``files``.

        Cap check, name resolution, rename and append happen in one critical
        section, so concurrent workers can neither exceed the cap nor pick the
        same name. A rejected staged file is deleted.

        Returns:
            (final_path, became_full) - ``became_full`` is True only for the
            commit that filled the last slot.

        Raises:
            TaskNotFound: the task was removed while downloading.
            TaskFull: every slot is already taken.
        """
        async with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                staged_path.unlink(missing_ok=True)
                raise TaskNotFound(task_id)
            if task.is_full or task.file_count >= cap:
                staged_path.unlink(missing_ok=True)
                raise TaskFull(task_id, url)

            taken = {p.name for p in task.files}
            final_path = resolve_collision(task.work_dir, filename, taken)
            staged_path.replace(final_path)

            task.files.append(final_path)
            task.updated_at = utc_now()

            became_full = False
            if task.file_count >= cap:
                task.is_full = True
                self._transition_locked(task, TaskStatus.FULL)
                became_full = True

            return final_path, became_full

    # ---------------------------------------------------------------------
    # Internals (lock must be held)
    # ---------------------------------------------------------------------

    def put_locked(self, task: Task) -> None:
        if task.task_id in self._issued_ids:
            raise ValueError(f"task id {task.task_id} was already issued")
        self._issued_ids.add(task.task_id)
        self._tasks[task.task_id] = task

    def count_locked(self) -> int:
        return len(self._tasks)

    def was_issued_locked(self, task_id: str) -> bool:
        return task_id in self._issued_ids

    def _require_locked(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _transition_locked(self, task: Task, target: TaskStatus) -> None:
        if not task.status.can_transition_to(target):
            raise InvalidTransition(task.task_id, task.status.value, target.value)
        logger.debug("Task %s: %s -> %s", task.task_id, task.status.value, target.value)
        task.status = target
        task.updated_at = utc_now()
