"""Custom exceptions for scanning and caching."""
from __future__ import annotations


class GitCacheError(Exception):
    """Base exception for cache engine failures."""


class ScanError(GitCacheError):
    """Raised when probing or reading history fails (I/O, permissions, tool errors)."""


class GitCapabilityUnavailableError(ScanError):
    """Raised when the git executable cannot be invoked at all."""


class StoreError(GitCacheError):
    """Raised when the durable store rejects a read or write."""
