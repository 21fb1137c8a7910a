"""
Tests for naming, collision resolution, storage layout and zip packaging.

Covers:
- Filename derived from the URL path (decoded, sanitized, extension fallback)
- Same name twice never overwrites: name_(1).ext, name_(2).ext
- Working directory creation is idempotent, removal is idempotent
- Archive contains exactly the committed files, byte for byte
"""

import tempfile
import unittest
import zipfile
from pathlib import Path

from src.backend.fs.archive_zip import build_task_archive
from src.backend.fs.naming import (
    filename_from_url,
    get_extension_for_mime,
    resolve_collision,
    split_name,
)
from src.backend.fs.storage import TaskStorageManager


class TestNaming(unittest.TestCase):
    def test_basename_of_url_path(self):
        self.assertEqual(filename_from_url("https://example.com/docs/report.pdf"), "report.pdf")

    def test_query_and_fragment_ignored(self):
        self.assertEqual(
            filename_from_url("https://example.com/a/photo.jpg?size=large#top"),
            "photo.jpg",
        )

    def test_percent_decoded(self):
        self.assertEqual(
            filename_from_url("https://example.com/annual%20report.pdf"),
            "annual report.pdf",
        )

    def test_encoded_separators_do_not_escape_directory(self):
        self.assertEqual(filename_from_url("https://example.com/..%2F..%2Fetc%2Fpasswd"), "passwd")

        name = filename_from_url("https://example.com/..%5C..%5Cboot.ini")
        self.assertNotIn("\\", name)
        self.assertNotIn("/", name)

    def test_stored_names_never_hidden(self):
        self.assertEqual(filename_from_url("https://example.com/.hidden.pdf"), "hidden.pdf")
        self.assertEqual(filename_from_url("https://example.com/c.part", "application/pdf"), "c.part")

    def test_empty_path_falls_back_to_default(self):
        self.assertEqual(filename_from_url("https://example.com/"), "download")

    def test_missing_extension_taken_from_content_type(self):
        self.assertEqual(
            filename_from_url("https://example.com/get?id=7", "application/pdf"),
            "get.pdf",
        )
        self.assertEqual(
            filename_from_url("https://example.com/image", "image/jpeg; q=1"),
            "image.jpg",
        )

    def test_existing_extension_kept(self):
        self.assertEqual(filename_from_url("https://example.com/x.jpeg", "image/jpeg"), "x.jpeg")

    def test_extension_for_mime(self):
        self.assertEqual(get_extension_for_mime("application/pdf"), "pdf")
        self.assertEqual(get_extension_for_mime("IMAGE/JPEG"), "jpg")
        self.assertEqual(get_extension_for_mime(""), "bin")

    def test_split_name(self):
        self.assertEqual(split_name("report.pdf"), ("report", ".pdf"))
        self.assertEqual(split_name("archive.tar.gz"), ("archive.tar", ".gz"))
        self.assertEqual(split_name("README"), ("README", ""))


class TestResolveCollision(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_free_name_used_as_is(self):
        self.assertEqual(resolve_collision(self.dir, "report.pdf"), self.dir / "report.pdf")

    def test_existing_file_gets_suffix(self):
        (self.dir / "report.pdf").write_bytes(b"first")
        (self.dir / "report_(1).pdf").write_bytes(b"second")

        self.assertEqual(resolve_collision(self.dir, "report.pdf"), self.dir / "report_(2).pdf")

    def test_taken_names_count_as_occupied(self):
        path = resolve_collision(self.dir, "photo.jpg", taken={"photo.jpg"})
        self.assertEqual(path.name, "photo_(1).jpg")

    def test_name_without_extension(self):
        (self.dir / "download").write_bytes(b"x")
        self.assertEqual(resolve_collision(self.dir, "download").name, "download_(1)")


class TestTaskStorageManager(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.storage = TaskStorageManager(Path(self.tmp.name) / "downloads")

    def tearDown(self):
        self.tmp.cleanup()

    def test_layout(self):
        paths = self.storage.get_task_paths("abc")
        self.assertEqual(paths.work_dir.name, "download_abc")
        self.assertEqual(paths.archive.name, "download_abc.zip")
        self.assertEqual(paths.work_dir.parent, paths.archive.parent)

    def test_ensure_task_dir_is_idempotent(self):
        first = self.storage.ensure_task_dir("abc")
        (first / "keep.pdf").write_bytes(b"data")
        second = self.storage.ensure_task_dir("abc")

        self.assertEqual(first, second)
        self.assertTrue((second / "keep.pdf").exists())

    def test_remove_task_files_twice(self):
        paths = self.storage.get_task_paths("abc")
        self.storage.ensure_task_dir("abc")
        paths.archive.write_bytes(b"zip")

        self.assertTrue(self.storage.remove_task_files("abc"))
        self.assertFalse(self.storage.remove_task_files("abc"))
        self.assertFalse(paths.work_dir.exists())
        self.assertFalse(paths.archive.exists())


class TestBuildTaskArchive(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.work_dir = self.root / "download_t1"
        self.work_dir.mkdir()

    def tearDown(self):
        self.tmp.cleanup()

    def _write(self, files: dict) -> list:
        paths = []
        for name, data in files.items():
            path = self.work_dir / name
            path.write_bytes(data)
            paths.append(path)
        return paths

    def test_roundtrip_preserves_names_and_bytes(self):
        files = {
            "report.pdf": b"%PDF-1.4 one",
            "report_(1).pdf": b"%PDF-1.4 two",
            "photo.jpg": bytes(range(256)),
        }
        zip_path = self.root / "download_t1.zip"
        result = build_task_archive(self._write(files), zip_path)

        self.assertEqual(result.files_archived, 3)
        self.assertEqual(result.bytes_archived, sum(len(d) for d in files.values()))
        with zipfile.ZipFile(zip_path) as zf:
            self.assertEqual(zf.namelist(), list(files))
            for name, data in files.items():
                self.assertEqual(zf.read(name), data)

    def test_only_given_files_are_archived(self):
        # A stored name may legitimately end in .part; staged downloads are
        # simply never passed in
        paths = self._write({"a.pdf": b"a", "notes.part": b"stored"})
        (self.work_dir / ".0f3a.part").write_bytes(b"partial")

        zip_path = self.root / "download_t1.zip"
        build_task_archive(paths, zip_path)

        with zipfile.ZipFile(zip_path) as zf:
            self.assertEqual(zf.namelist(), ["a.pdf", "notes.part"])
            self.assertEqual(zf.read("notes.part"), b"stored")

    def test_missing_file_raises_and_leaves_no_archive(self):
        paths = self._write({"a.pdf": b"a"})
        zip_path = self.root / "download_t1.zip"

        with self.assertRaises(OSError):
            build_task_archive([*paths, self.work_dir / "gone.pdf"], zip_path)
        self.assertFalse(zip_path.exists())
        self.assertEqual(list(self.root.glob(".*.tmp")), [])


if __name__ == "__main__":
    unittest.main()
