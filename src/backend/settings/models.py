from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..downloader.fetcher import DEFAULT_ALLOWED_CONTENT_TYPES, DEFAULT_TIMEOUT_S
from ..net.retry import RetryConfig
from ..tasks.archive import DEFAULT_CLEANUP_GRACE_S, DEFAULT_IDLE_TTL_S, DEFAULT_UNCLAIMED_TTL_S


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_DOWNLOAD_ROOT = "downloads"
DEFAULT_MAX_ACTIVE_TASKS = 3
DEFAULT_MAX_FILES_PER_TASK = 3


def _as_int(value: Any, default: int, *, minimum: int) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float, *, minimum: float) -> float:
    try:
        return max(minimum, float(value))
    except (TypeError, ValueError):
        return default


@dataclass
class ServerSettings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    download_root: str = DEFAULT_DOWNLOAD_ROOT
    max_active_tasks: int = DEFAULT_MAX_ACTIVE_TASKS
    max_files_per_task: int = DEFAULT_MAX_FILES_PER_TASK
    cleanup_grace_s: float = DEFAULT_CLEANUP_GRACE_S
    unclaimed_ttl_s: float = DEFAULT_UNCLAIMED_TTL_S
    idle_ttl_s: float = DEFAULT_IDLE_TTL_S
    request_timeout_s: float = DEFAULT_TIMEOUT_S
    allowed_content_types: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_CONTENT_TYPES))
    retry: Optional[RetryConfig] = None

    def get_retry(self) -> RetryConfig:
        """Get retry config, using defaults if not set."""
        return self.retry or RetryConfig()

    def to_persist_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": 1,
            "host": self.host,
            "port": self.port,
            "download_root": self.download_root,
            "max_active_tasks": self.max_active_tasks,
            "max_files_per_task": self.max_files_per_task,
            "cleanup_grace_s": self.cleanup_grace_s,
            "unclaimed_ttl_s": self.unclaimed_ttl_s,
            "idle_ttl_s": self.idle_ttl_s,
            "request_timeout_s": self.request_timeout_s,
            "allowed_content_types": list(self.allowed_content_types),
        }
        if self.retry is not None:
            data["retry"] = self.retry.to_persist_dict()
        return data

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "ServerSettings":
        host = str(data.get("host", DEFAULT_HOST) or DEFAULT_HOST)
        download_root = str(data.get("download_root", DEFAULT_DOWNLOAD_ROOT) or DEFAULT_DOWNLOAD_ROOT)

        port = _as_int(data.get("port"), DEFAULT_PORT, minimum=0)
        if port > 65535:
            port = DEFAULT_PORT

        raw_types = data.get("allowed_content_types")
        allowed = list(DEFAULT_ALLOWED_CONTENT_TYPES)
        if isinstance(raw_types, (list, tuple)):
            parsed = [str(t).strip().lower() for t in raw_types if str(t).strip()]
            if parsed:
                allowed = parsed

        raw_retry = data.get("retry")
        retry = None
        if isinstance(raw_retry, dict):
            retry = RetryConfig.from_persist_dict(raw_retry)

        return cls(
            host=host,
            port=port,
            download_root=download_root,
            max_active_tasks=_as_int(data.get("max_active_tasks"), DEFAULT_MAX_ACTIVE_TASKS, minimum=1),
            max_files_per_task=_as_int(data.get("max_files_per_task"), DEFAULT_MAX_FILES_PER_TASK, minimum=1),
            cleanup_grace_s=_as_float(data.get("cleanup_grace_s"), DEFAULT_CLEANUP_GRACE_S, minimum=0.0),
            unclaimed_ttl_s=_as_float(data.get("unclaimed_ttl_s"), DEFAULT_UNCLAIMED_TTL_S, minimum=0.0),
            idle_ttl_s=_as_float(data.get("idle_ttl_s"), DEFAULT_IDLE_TTL_S, minimum=0.0),
            request_timeout_s=_as_float(data.get("request_timeout_s"), DEFAULT_TIMEOUT_S, minimum=0.1),
            allowed_content_types=allowed,
            retry=retry,
        )
