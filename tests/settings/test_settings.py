"""
Tests for server settings persistence and environment overrides.
"""

import json
import tempfile
import unittest
from pathlib import Path

from src.backend.net.retry import RetryConfig
from src.backend.settings.models import ServerSettings
from src.backend.settings.store import SettingsStore, apply_env_overrides, load_settings


class TestServerSettings(unittest.TestCase):
    def test_defaults(self):
        settings = ServerSettings()
        self.assertEqual(settings.max_active_tasks, 3)
        self.assertEqual(settings.max_files_per_task, 3)
        self.assertEqual(settings.allowed_content_types, ["application/pdf", "image/jpeg"])
        self.assertEqual(settings.get_retry(), RetryConfig())

    def test_persist_roundtrip(self):
        settings = ServerSettings(
            port=9000,
            download_root="/srv/bundles",
            cleanup_grace_s=5.0,
            allowed_content_types=["image/jpeg"],
            retry=RetryConfig(max_retries=4),
        )
        restored = ServerSettings.from_persist_dict(settings.to_persist_dict())
        self.assertEqual(restored, settings)

    def test_invalid_values_fall_back(self):
        settings = ServerSettings.from_persist_dict(
            {
                "port": 70000,
                "max_active_tasks": "many",
                "max_files_per_task": 0,
                "cleanup_grace_s": -3,
                "allowed_content_types": [],
            }
        )
        self.assertEqual(settings.port, 8080)
        self.assertEqual(settings.max_active_tasks, 3)
        self.assertEqual(settings.max_files_per_task, 1)
        self.assertEqual(settings.cleanup_grace_s, 0.0)
        self.assertEqual(settings.allowed_content_types, ["application/pdf", "image/jpeg"])


class TestSettingsStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "config" / "settings.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_missing_file_gives_defaults(self):
        self.assertEqual(SettingsStore(path=self.path).load(), ServerSettings())

    def _write(self, path: Path, settings: ServerSettings) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings.to_persist_dict()), encoding="utf-8")

    def test_load_written_file(self):
        self._write(self.path, ServerSettings(port=9100, max_active_tasks=5))
        loaded = SettingsStore(path=self.path).load()
        self.assertEqual(loaded.port, 9100)
        self.assertEqual(loaded.max_active_tasks, 5)

    def test_corrupt_file_gives_defaults(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")

        with self.assertLogs("src.backend.settings.store", level="WARNING"):
            self.assertEqual(SettingsStore(path=self.path).load(), ServerSettings())


class TestEnvOverrides(unittest.TestCase):
    def test_env_wins_over_file(self):
        settings = apply_env_overrides(
            ServerSettings(port=9000),
            {"PORT": "9500", "DOWNLOAD_ROOT": "/data", "CLEANUP_GRACE_S": "2.5", "IDLE_TTL_S": "30"},
        )
        self.assertEqual(settings.port, 9500)
        self.assertEqual(settings.download_root, "/data")
        self.assertEqual(settings.cleanup_grace_s, 2.5)
        self.assertEqual(settings.idle_ttl_s, 30.0)

    def test_non_numeric_value_ignored(self):
        with self.assertLogs("src.backend.settings.store", level="WARNING"):
            settings = apply_env_overrides(ServerSettings(), {"MAX_ACTIVE_TASKS": "lots"})
        self.assertEqual(settings.max_active_tasks, 3)

    def test_load_settings_with_explicit_env(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "settings.json"
            path.write_text(
                json.dumps(ServerSettings(port=9000, host="0.0.0.0").to_persist_dict()),
                encoding="utf-8",
            )

            settings = load_settings(config_path=path, env={"PORT": "9001"})

        self.assertEqual(settings.host, "0.0.0.0")
        self.assertEqual(settings.port, 9001)


if __name__ == "__main__":
    unittest.main()
