"""
File naming conventions for task working directories.

A stored file keeps the base name of its source URL. When that name is already
taken inside the task directory, an incrementing suffix is inserted before the
extension:

    report.pdf -> report_(1).pdf -> report_(2).pdf -> ...
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Collection
from urllib.parse import unquote, urlparse


DEFAULT_FILENAME = "download"

# Characters never allowed in a stored filename
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def get_extension_for_mime(mime_type: str) -> str:
    """
    Get the file extension for a MIME type.

    Args:
        mime_type: The MIME type (e.g., 'application/pdf', 'image/jpeg').

    Returns:
        File extension without dot (e.g., 'pdf', 'jpg').
    """
    mime_to_ext = {
        'application/pdf': 'pdf',
        'image/jpeg': 'jpg',
        'image/jpg': 'jpg',
        'image/png': 'png',
    }

    mime_lower = mime_type.lower().split(';')[0].strip()
    if not mime_lower:
        return 'bin'
    return mime_to_ext.get(mime_lower, mime_lower.split('/')[-1])


def filename_from_url(url: str, content_type: str | None = None) -> str:
    """
    Derive the stored filename from a URL.

    Uses the last segment of the URL path (percent-decoded). Query strings and
    fragments are ignored. If the segment has no extension and a content type
    is known, the extension is derived from it.

    Args:
        url: Source URL.
        content_type: Content type reported by the remote host, if any.

    Returns:
        A filename safe to create inside a task directory.
    """
    path = unquote(urlparse(url).path)
    name = PurePosixPath(path).name
    name = _UNSAFE_CHARS.sub('_', name).strip().strip('.')

    if not name:
        name = DEFAULT_FILENAME

    if not PurePosixPath(name).suffix and content_type:
        name = f"{name}.{get_extension_for_mime(content_type)}"

    return name


def split_name(filename: str) -> tuple[str, str]:
    """Split ``name.ext`` into ``("name", ".ext")``; only the last suffix counts."""
    suffix = PurePosixPath(filename).suffix
    if suffix and suffix != filename:
        return filename[: -len(suffix)], suffix
    return filename, ''


def resolve_collision(
    directory: Path,
    filename: str,
    taken: Collection[str] = (),
) -> Path:
    """
    Pick the first free path for ``filename`` inside ``directory``.

    A name is free when no file exists under it and it is not in ``taken``
    (names already recorded for the task).

    Args:
        directory: The task working directory.
        filename: Preferred filename.
        taken: Names that must be treated as occupied.

    Returns:
        Path of the first free candidate.
    """
    base, ext = split_name(filename)
    candidate = filename
    i = 1
    while candidate in taken or (directory / candidate).exists():
        candidate = f"{base}_({i}){ext}"
        i += 1
    return directory / candidate
