"""
File system utilities for task storage.

Provides:
- Directory structure management (storage.py)
- File naming and collision resolution (naming.py)
- Archive packaging (archive_zip.py)
"""

from .storage import TaskStorageManager, TaskPaths, STAGING_SUFFIX
from .naming import filename_from_url, get_extension_for_mime, resolve_collision
from .archive_zip import build_task_archive, ArchiveResult

__all__ = [
    "TaskStorageManager",
    "TaskPaths",
    "STAGING_SUFFIX",
    "filename_from_url",
    "get_extension_for_mime",
    "resolve_collision",
    "build_task_archive",
    "ArchiveResult",
]
