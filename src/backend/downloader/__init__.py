"""
Remote content retrieval.

Provides:
- Content-type validation and streaming downloads (fetcher.py)
"""

from .fetcher import ContentCheck, ContentFetcher, DEFAULT_ALLOWED_CONTENT_TYPES

__all__ = [
    "ContentCheck",
    "ContentFetcher",
    "DEFAULT_ALLOWED_CONTENT_TYPES",
]
