"""
Error taxonomy for the task lifecycle.

Every error carries a machine-checkable ``kind``, the HTTP status the API maps
it to, a ``retryable`` flag telling clients whether the same request may
succeed later, and a message that is safe to show to clients (no paths, no
traces).
"""

from __future__ import annotations

from typing import Any, Optional


class TaskError(Exception):
    kind = "task_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "retryable": self.retryable}


class CapacityExceeded(TaskError):
    kind = "capacity_exceeded"
    status_code = 503
    retryable = True

    def __init__(self, limit: int) -> None:
        super().__init__(f"maximum number of tasks reached ({limit}), try again later")
        self.limit = limit


class TaskCreationFailed(TaskError):
    kind = "task_creation_failed"
    status_code = 500

    def __init__(self) -> None:
        super().__init__("failed to create task directory")


class TaskNotFound(TaskError):
    kind = "task_not_found"
    status_code = 404

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id} not found")
        self.task_id = task_id


class TaskAlreadyFull(TaskError):
    kind = "task_already_full"
    status_code = 400

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id} is already full")
        self.task_id = task_id


class TaskFull(TaskError):
    """A worker lost the race for the last free slot of a task."""

    kind = "task_full"
    status_code = 409

    def __init__(self, task_id: str, url: Optional[str] = None) -> None:
        super().__init__(f"task {task_id} reached its file limit")
        self.task_id = task_id
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.url is not None:
            data["url"] = self.url
        return data


class TaskNotReady(TaskError):
    kind = "task_not_ready"
    status_code = 409

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id} has not received all of its files yet")
        self.task_id = task_id


class InvalidTransition(TaskError):
    kind = "invalid_transition"
    status_code = 409

    def __init__(self, task_id: str, current: str, target: str) -> None:
        super().__init__(f"task {task_id} cannot move from {current} to {target}")
        self.task_id = task_id


class InvalidRequest(TaskError):
    kind = "invalid_request"
    status_code = 400


class ValidationFailed(TaskError):
    """Remote content was rejected before any download was attempted."""

    kind = "validation_failed"
    status_code = 400

    def __init__(self, url: str, reason: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(f"{reason}: {url}", status_code=status_code)
        self.url = url
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.reason, "url": self.url, "retryable": self.retryable}


class DownloadFailed(TaskError):
    kind = "download_failed"
    status_code = 502
    retryable = True

    def __init__(self, url: str, cause: str) -> None:
        super().__init__(f"failed to download {url}: {cause}")
        self.url = url
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(message="failed to download file", url=self.url)
        return data


class PackagingError(TaskError):
    kind = "packaging_error"
    status_code = 500
    retryable = True

    def __init__(self, task_id: str, cause: str) -> None:
        super().__init__(f"failed to package task {task_id}: {cause}")
        self.task_id = task_id
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["message"] = "failed to create archive"
        return data
