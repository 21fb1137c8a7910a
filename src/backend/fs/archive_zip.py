"""
Archive utilities for packing a task's committed files into a zip archive.

Entries keep their stored filenames and raw bytes. Files are stored without
compression: PDFs and JPEGs are already compressed.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import NamedTuple, Sequence


class ArchiveResult(NamedTuple):
    """Result of an archive operation."""
    zip_path: Path
    files_archived: int
    bytes_archived: int


def build_task_archive(files: Sequence[Path], zip_path: Path) -> ArchiveResult:
    """
    Write ``files`` into a single zip archive, one entry per file, in order.

    Only the given files are archived; whatever else sits in the working
    directory (staged downloads included) is ignored. The archive is written
    to a temporary name first and moved into place only once complete, so a
    failed run never leaves a truncated archive.

    Args:
        files: The committed files of a task.
        zip_path: Destination of the archive.

    Returns:
        ArchiveResult with archive path and statistics.

    Raises:
        OSError: If any file cannot be read or the archive cannot be written.
    """
    tmp_path = zip_path.with_name(f".{zip_path.name}.tmp")
    bytes_archived = 0

    try:
        with zipfile.ZipFile(tmp_path, "w", zipfile.ZIP_STORED) as zf:
            for file_path in files:
                zf.write(file_path, file_path.name)
                bytes_archived += file_path.stat().st_size
        tmp_path.replace(zip_path)
    finally:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass

    return ArchiveResult(
        zip_path=zip_path,
        files_archived=len(files),
        bytes_archived=bytes_archived,
    )
