"""
Backoff for transient fetch failures: dropped connections, 429 and 5xx.

A submission waits for every one of its workers, so delays stay short and
the number of attempts is small.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, TypeVar

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY_S = 0.5
DEFAULT_MAX_DELAY_S = 5.0
DEFAULT_JITTER_FACTOR = 0.25
DEFAULT_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

T = TypeVar("T")
RetryHook = Callable[[int, Exception, float], None]

logger = logging.getLogger(__name__)


class RetryableError(Exception):
    """
    A failure worth another attempt.

    ``status_code`` narrows the decision to the configured status list;
    ``should_retry=False`` marks a failure that must surface immediately.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        should_retry: bool = True,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.should_retry = should_retry


def _coerce(value: Any, cast: Callable[[Any], T], default: T) -> T:
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


@dataclass
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_s: float = DEFAULT_BASE_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S
    # Fraction of the computed delay added at random on top of it
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    retryable_status_codes: set[int] = field(default_factory=lambda: set(DEFAULT_RETRYABLE_STATUS_CODES))
    enabled: bool = True

    def to_persist_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "base_delay_s": self.base_delay_s,
            "max_delay_s": self.max_delay_s,
            "jitter_factor": self.jitter_factor,
            "retryable_status_codes": sorted(self.retryable_status_codes),
            "enabled": self.enabled,
        }

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "RetryConfig":
        """Unparseable values fall back to their defaults; numbers are clamped."""
        codes: set[int] = set()
        raw_codes = data.get("retryable_status_codes")
        if isinstance(raw_codes, (list, tuple)):
            codes = {c for c in (_coerce(v, int, None) for v in raw_codes) if c is not None}

        jitter = _coerce(data.get("jitter_factor", DEFAULT_JITTER_FACTOR), float, DEFAULT_JITTER_FACTOR)
        return cls(
            max_retries=max(0, _coerce(data.get("max_retries", DEFAULT_MAX_RETRIES), int, DEFAULT_MAX_RETRIES)),
            base_delay_s=max(0.0, _coerce(data.get("base_delay_s", DEFAULT_BASE_DELAY_S), float, DEFAULT_BASE_DELAY_S)),
            max_delay_s=max(0.0, _coerce(data.get("max_delay_s", DEFAULT_MAX_DELAY_S), float, DEFAULT_MAX_DELAY_S)),
            jitter_factor=min(1.0, max(0.0, jitter)),
            retryable_status_codes=codes or set(DEFAULT_RETRYABLE_STATUS_CODES),
            enabled=bool(data.get("enabled", True)),
        )

    def compute_delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (``attempt`` is 0-indexed)."""
        delay = min(self.base_delay_s * (2 ** attempt), self.max_delay_s)
        return delay + delay * random.uniform(0, self.jitter_factor)

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes

    def should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, RetryableError):
            if not exc.should_retry:
                return False
            return exc.status_code is None or self.is_retryable_status(exc.status_code)

        status = status_code_of(exc)
        return status is not None and self.is_retryable_status(status)

    def attempts(self) -> Iterator[int]:
        return iter(range(self.max_retries + 1 if self.enabled else 1))


def status_code_of(exc: Exception) -> Optional[int]:
    """HTTP status carried by a urllib-style error (``code`` or ``status``), if any."""
    for attr in ("code", "status"):
        value = getattr(exc, attr, None)
        if value is not None:
            code = _coerce(value, int, None)
            if code is not None:
                return code
    return None


def with_retry(
    func: Callable[[], T],
    *,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[RetryHook] = None,
) -> T:
    """
    Call ``func`` until it succeeds or the failure is final.

    Blocking (sleeps between attempts); fetch workers run it in a thread.
    ``on_retry(attempt, exc, delay)`` replaces the default warning log.

    Raises:
        The last exception once retries are exhausted, or a non-retryable
        exception right away.
    """
    cfg = config or RetryConfig()
    last_attempt = cfg.max_retries if cfg.enabled else 0

    for attempt in cfg.attempts():
        try:
            return func()
        except Exception as exc:
            if attempt >= last_attempt or not cfg.should_retry(exc):
                raise
            delay = cfg.compute_delay(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            else:
                logger.warning("Fetch attempt %d/%d failed (%s), retrying in %.2fs",
                               attempt + 1, last_attempt + 1, exc, delay)
            time.sleep(delay)

    raise AssertionError("unreachable: the last attempt returns or raises")
