"""Durable store contract for per-mapping cache entries"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from gitcache.entities import CacheEntry, MappingCacheRecord, RepositoryMapping, StaleEntry


class GitCacheStore(ABC):
    """
    Row store holding repository mappings and their cache entries.

    Implementations raise StoreError when the backing store rejects an
    operation. ``upsert`` is write-if-newer: a write whose ``as_of`` is older
    than the stored ``last_updated_at`` is discarded and reported as False,
    as is a write for a mapping that no longer exists.
    """

    @abstractmethod
    def get(self, mapping_id: str) -> Optional[CacheEntry]:
        """Cache entry for a mapping, or None when it was never scanned."""

    @abstractmethod
    def upsert(self, mapping_id: str, fields: Dict[str, Any], as_of: datetime) -> bool:
        """Set the given cache fields and ``last_updated_at = as_of``."""

    @abstractmethod
    def list_older_than(
        self, threshold_hours: float, now: Optional[datetime] = None
    ) -> List[StaleEntry]:
        """Mappings never scanned or last scanned before the cutoff, oldest first."""

    @abstractmethod
    def find_project_records(
        self, project_id: str, user_id: Optional[str] = None
    ) -> List[MappingCacheRecord]:
        """All mappings of a project (optionally one user) with their caches."""

    @abstractmethod
    def find_project_mappings(
        self, project_id: str, only_valid: bool = False
    ) -> List[RepositoryMapping]:
        """Mappings of a project; ``only_valid`` drops known non-repositories."""

    @abstractmethod
    def save_mapping(self, mapping: RepositoryMapping) -> None:
        """Create or update the mapping fields, leaving any cache untouched."""

    @abstractmethod
    def delete_mapping(self, mapping_id: str) -> bool:
        """Remove a mapping and its cache."""

    @abstractmethod
    def count_mappings(self) -> int:
        """Number of mapping rows."""

    def close(self) -> None:
        """Release backing resources."""
