"""
Download orchestration for one upload submission.

Fan-out: one worker per URL, each validating then downloading on its own.
Fan-in: the submission returns only after every worker has finished; the
error reported is the one of the lowest-indexed failing URL. Files that did
land stay committed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol, Sequence

from src.backend.fs.naming import filename_from_url
from src.backend.fs.storage import STAGING_SUFFIX

from .archive import ArchiveManager
from .errors import InvalidRequest, TaskNotFound
from .models import SubmitResult, Task
from .registry import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILES_PER_TASK = 3


class Fetcher(Protocol):
    def check(self, url: str): ...

    def fetch(self, url: str, dest: Path) -> int: ...


class DownloadOrchestrator:
    def __init__(
        self,
        *,
        registry: TaskRegistry,
        fetcher: Fetcher,
        archive: Optional[ArchiveManager] = None,
        max_files: int = DEFAULT_MAX_FILES_PER_TASK,
    ) -> None:
        self._registry = registry
        self._fetcher = fetcher
        self._archive = archive
        self._max_files = max_files

    @property
    def max_files(self) -> int:
        return self._max_files

    async def submit(self, task_id: str, urls: Sequence[str]) -> SubmitResult:
        """
        Validate and download ``urls`` into a task.

        Raises:
            InvalidRequest: zero URLs, or more than the per-task limit.
            TaskNotFound / TaskAlreadyFull: the task cannot take files.
            ValidationFailed / DownloadFailed / TaskFull: first failing URL,
                after all workers have finished.
        """
        if not urls:
            raise InvalidRequest("no files uploaded")
        if len(urls) > self._max_files:
            raise InvalidRequest(f"files count exceeds the limit of {self._max_files}")

        task = await self._registry.ensure_accepting(task_id)
        if self._archive is not None:
            self._archive.schedule_idle_cleanup(task_id)

        outcomes = await asyncio.gather(
            *(self._run_worker(task, url) for url in urls),
            return_exceptions=True,
        )

        became_full = False
        errors: list[BaseException] = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                errors.append(outcome)
                logger.warning("Task %s: %s rejected: %s", task_id, url, outcome)
            else:
                _, filled = outcome
                became_full = became_full or filled

        if became_full and self._archive is not None:
            self._archive.request_package(task_id)

        if errors:
            raise errors[0]

        current = await self._registry.get(task_id)
        if current is None:
            raise TaskNotFound(task_id)

        logger.info("Task %s: stored %d file(s), %d total", task_id, len(urls), current.file_count)
        return SubmitResult(
            task_id=task_id,
            file_count=current.file_count,
            is_full=current.is_full,
            files=tuple(p.name for p in current.files),
        )

    async def _run_worker(self, task: Task, url: str) -> tuple[Path, bool]:
        check = await asyncio.to_thread(self._fetcher.check, url)

        # Cheap early exit; commit_file re-checks under the same lock.
        await self._registry.ensure_room(task.task_id, self._max_files, url=url)

        filename = filename_from_url(url, getattr(check, "content_type", None))
        staged = task.work_dir / f".{uuid.uuid4().hex}{STAGING_SUFFIX}"
        try:
            await asyncio.to_thread(self._fetcher.fetch, url, staged)
        except BaseException:
            staged.unlink(missing_ok=True)
            raise

        return await self._registry.commit_file(
            task.task_id,
            staged_path=staged,
            filename=filename,
            cap=self._max_files,
            url=url,
        )
