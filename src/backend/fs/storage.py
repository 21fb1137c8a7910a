"""
Task storage directory structure management.

Directory structure:
    <download_root>/download_<task_id>/       working directory
    <download_root>/download_<task_id>.zip    packaged archive
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import NamedTuple


TASK_DIR_PREFIX = "download_"
ARCHIVE_SUFFIX = ".zip"

# Staged downloads are hidden files with this suffix until committed; stored
# names never start with a dot, so the two cannot collide
STAGING_SUFFIX = ".part"

logger = logging.getLogger(__name__)


class TaskPaths(NamedTuple):
    """Paths owned by a single task."""
    work_dir: Path    # <download_root>/download_<id>/
    archive: Path     # <download_root>/download_<id>.zip


class TaskStorageManager:
    """
    Manages on-disk artifacts for tasks.

    Each task owns one working directory and, once packaged, one archive
    next to it. Removal is idempotent.
    """

    def __init__(self, download_root: Path):
        """
        Initialize the storage manager.

        Args:
            download_root: The root directory for all task directories.
        """
        self._download_root = Path(download_root).resolve()

    @property
    def download_root(self) -> Path:
        """Get the download root directory."""
        return self._download_root

    def get_task_paths(self, task_id: str) -> TaskPaths:
        name = f"{TASK_DIR_PREFIX}{task_id}"
        return TaskPaths(
            work_dir=self._download_root / name,
            archive=self._download_root / f"{name}{ARCHIVE_SUFFIX}",
        )

    def ensure_task_dir(self, task_id: str) -> Path:
        """
        Ensure the task working directory exists, creating it if needed.

        Raises:
            OSError: If the directory cannot be created.
        """
        work_dir = self.get_task_paths(task_id).work_dir
        work_dir.mkdir(parents=True, exist_ok=True)
        return work_dir

    def remove_task_files(self, task_id: str) -> bool:
        """
        Delete the task's working directory and archive.

        Safe to call more than once: missing artifacts are ignored.

        Returns:
            True if anything was deleted.
        """
        paths = self.get_task_paths(task_id)
        removed = False

        if paths.work_dir.exists():
            try:
                shutil.rmtree(paths.work_dir)
                removed = True
            except FileNotFoundError:
                pass

        try:
            paths.archive.unlink()
            removed = True
        except FileNotFoundError:
            pass

        if removed:
            logger.debug("Removed artifacts of task %s", task_id)
        return removed
