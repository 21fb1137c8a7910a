from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import ServerSettings

logger = logging.getLogger(__name__)

# Environment variable -> settings key
ENV_OVERRIDES = {
    "HOST": "host",
    "PORT": "port",
    "DOWNLOAD_ROOT": "download_root",
    "MAX_ACTIVE_TASKS": "max_active_tasks",
    "MAX_FILES_PER_TASK": "max_files_per_task",
    "CLEANUP_GRACE_S": "cleanup_grace_s",
    "UNCLAIMED_TTL_S": "unclaimed_ttl_s",
    "IDLE_TTL_S": "idle_ttl_s",
    "REQUEST_TIMEOUT_S": "request_timeout_s",
}

_NUMERIC_KEYS = frozenset(ENV_OVERRIDES.values()) - {"host", "download_root"}


class SettingsStore:
    """Read-only JSON settings file; a missing or unreadable file means defaults."""

    def __init__(self, *, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ServerSettings:
        if not self._path.exists():
            return ServerSettings()

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return ServerSettings()

        if not isinstance(raw, dict):
            return ServerSettings()

        return ServerSettings.from_persist_dict(raw)


def apply_env_overrides(settings: ServerSettings, env: Mapping[str, str]) -> ServerSettings:
    """
    Overlay environment values on top of file settings.

    Values are parsed with the same rules as the settings file; a value that
    does not parse is ignored with a warning.
    """
    data = settings.to_persist_dict()
    for var, key in ENV_OVERRIDES.items():
        raw = (env.get(var) or "").strip()
        if not raw:
            continue
        if key in _NUMERIC_KEYS:
            try:
                float(raw)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", var, raw)
                continue
        data[key] = raw

    return ServerSettings.from_persist_dict(data)


def load_settings(
    *,
    config_path: Optional[Path] = None,
    env_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ServerSettings:
    """
    Startup configuration: optional JSON file, then ``.env``, then the process environment.
    """
    if env is None:
        load_dotenv(env_file or ".env")
        env = os.environ

    settings = SettingsStore(path=config_path).load() if config_path else ServerSettings()
    return apply_env_overrides(settings, env)
