"""
Content fetcher: validates and retrieves remote files.

Two blocking operations, both meant to run in worker threads:
- check(url): HEAD request confirming the resource exists and its declared
  content type is on the allow-list.
- fetch(url, dest): GET request streaming the body into a caller-supplied path.

Every request carries a timeout so an unresponsive host cannot stall a
submission indefinitely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from ..net.retry import RetryConfig, RetryableError, with_retry
from ..tasks.errors import DownloadFailed, ValidationFailed


DEFAULT_ALLOWED_CONTENT_TYPES = ("application/pdf", "image/jpeg")
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_USER_AGENT = "task-bundle-server/0.1"

# Buffer size for streaming downloads
BUFFER_SIZE = 65536  # 64 KB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentCheck:
    """What the remote host declared for a URL."""
    url: str
    content_type: str
    content_length: Optional[int] = None


class ContentFetcher:
    """
    Blocking HTTP client for remote task files.

    Usage:
        fetcher = ContentFetcher(timeout_s=10)
        check = fetcher.check(url)          # raises ValidationFailed
        size = fetcher.fetch(url, dest)     # raises DownloadFailed
    """

    def __init__(
        self,
        *,
        allowed_content_types: Iterable[str] = DEFAULT_ALLOWED_CONTENT_TYPES,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry: Optional[RetryConfig] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._allowed = tuple(t.lower() for t in allowed_content_types)
        self._timeout_s = timeout_s
        self._retry = retry or RetryConfig()
        self._headers = {"User-Agent": user_agent, "Accept": "*/*"}

    @property
    def allowed_content_types(self) -> tuple[str, ...]:
        return self._allowed

    def is_allowed(self, content_type: str) -> bool:
        ct = content_type.lower().strip()
        return any(ct.startswith(t) for t in self._allowed)

    def check(self, url: str) -> ContentCheck:
        """
        Confirm that ``url`` exists and serves an allowed content type.

        Raises:
            ValidationFailed: unsupported URL, unreachable host, non-200
                status (400) or disallowed content type (415).
        """
        scheme = urlparse(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise ValidationFailed(url, "unsupported url scheme")

        req = Request(url, headers=self._headers, method="HEAD")
        try:
            with urlopen(req, timeout=self._timeout_s) as resp:
                status = resp.status
                content_type = resp.headers.get("Content-Type", "") or ""
                length = resp.headers.get("Content-Length")
        except HTTPError as exc:
            raise ValidationFailed(url, f"file not found (HTTP {exc.code})") from exc
        except (URLError, OSError, ValueError) as exc:
            raise ValidationFailed(url, "head request failed") from exc

        if status != 200:
            raise ValidationFailed(url, f"file not found (HTTP {status})")

        if not self.is_allowed(content_type):
            raise ValidationFailed(
                url,
                f"unsupported file type {content_type or 'unknown'}",
                status_code=415,
            )

        try:
            content_length = int(length) if length is not None else None
        except ValueError:
            content_length = None

        return ContentCheck(url=url, content_type=content_type, content_length=content_length)

    def fetch(self, url: str, dest: Path) -> int:
        """
        Download ``url`` into ``dest``.

        Transient failures are retried per the retry config. On final failure
        the partially written file is removed.

        Returns:
            Number of bytes written.

        Raises:
            DownloadFailed: network or storage failure.
        """

        def _attempt() -> int:
            req = Request(url, headers=self._headers)
            try:
                with urlopen(req, timeout=self._timeout_s) as resp, open(dest, "wb") as f:
                    written = 0
                    while True:
                        chunk = resp.read(BUFFER_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        written += len(chunk)
                    return written
            except HTTPError:
                raise
            except (URLError, OSError) as exc:
                reason = getattr(exc, "reason", exc)
                raise RetryableError(str(reason)) from exc

        try:
            return with_retry(_attempt, config=self._retry)
        except Exception as exc:
            dest.unlink(missing_ok=True)
            logger.warning("Download failed for %s: %s", url, exc)
            raise DownloadFailed(url, _describe(exc)) from exc


def _describe(exc: Exception) -> str:
    if isinstance(exc, HTTPError):
        return f"HTTP {exc.code}"
    return str(exc) or exc.__class__.__name__
