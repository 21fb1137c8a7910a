from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from src.shared.task_status import TaskStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Task:
    task_id: str
    work_dir: Path
    status: TaskStatus = TaskStatus.CREATED
    files: list[Path] = field(default_factory=list)
    is_full: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    archive_path: Optional[Path] = None

    @property
    def file_count(self) -> int:
        return len(self.files)

    def snapshot(self) -> "Task":
        """Detached copy safe to hand out of the registry lock."""
        return replace(self, files=list(self.files))

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "id": self.task_id,
            "fileCount": self.file_count,
            "status": self.status.value,
            "isFull": self.is_full,
        }


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of one upload submission once every worker has finished."""
    task_id: str
    file_count: int
    is_full: bool
    files: tuple[str, ...] = ()
