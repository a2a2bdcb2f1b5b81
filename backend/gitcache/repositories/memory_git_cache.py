"""In-process cache store with the same semantics as the MongoDB store"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from gitcache.entities import (
    CacheEntry,
    MappingCacheRecord,
    RepositoryMapping,
    StaleEntry,
)
from gitcache.repositories.git_cache_store import GitCacheStore

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryGitCacheStore(GitCacheStore):
    """Dict-backed store for single-process deployments and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._mappings: Dict[str, RepositoryMapping] = {}
        self._caches: Dict[str, CacheEntry] = {}

    def get(self, mapping_id: str) -> Optional[CacheEntry]:
        with self._lock:
            cache = self._caches.get(mapping_id)
            return cache.model_copy(deep=True) if cache else None

    def upsert(self, mapping_id: str, fields: Dict[str, Any], as_of: datetime) -> bool:
        with self._lock:
            if mapping_id not in self._mappings:
                return False
            current = self._caches.get(mapping_id)
            if (
                current is not None
                and current.last_updated_at is not None
                and current.last_updated_at > as_of
            ):
                return False

            base = current.model_dump() if current else {}
            self._caches[mapping_id] = CacheEntry.model_validate(
                {**base, **fields, "last_updated_at": as_of}
            )
            return True

    def list_older_than(
        self, threshold_hours: float, now: Optional[datetime] = None
    ) -> List[StaleEntry]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=threshold_hours)

        with self._lock:
            entries = []
            for mapping_id, mapping in self._mappings.items():
                cache = self._caches.get(mapping_id)
                if cache is not None and cache.is_valid_repository is False:
                    continue
                last_updated = cache.last_updated_at if cache else None
                if last_updated is not None and last_updated >= cutoff:
                    continue
                entries.append(
                    StaleEntry(
                        id=mapping_id,
                        local_path=mapping.local_path,
                        project_id=mapping.project_id,
                        last_updated_at=last_updated,
                    )
                )

        # Never-scanned rows first, then oldest
        entries.sort(key=lambda e: (e.last_updated_at is not None, e.last_updated_at or _EPOCH))
        return entries

    def find_project_records(
        self, project_id: str, user_id: Optional[str] = None
    ) -> List[MappingCacheRecord]:
        with self._lock:
            records = [
                MappingCacheRecord(
                    mapping=mapping.model_copy(),
                    cache=self._caches[mapping.id].model_copy(deep=True)
                    if mapping.id in self._caches
                    else None,
                )
                for mapping in self._project_mappings(project_id)
                if user_id is None or mapping.user_id == user_id
            ]
        return records

    def find_project_mappings(
        self, project_id: str, only_valid: bool = False
    ) -> List[RepositoryMapping]:
        with self._lock:
            return [
                mapping.model_copy()
                for mapping in self._project_mappings(project_id)
                if not only_valid
                or mapping.id not in self._caches
                or self._caches[mapping.id].is_valid_repository
            ]

    def save_mapping(self, mapping: RepositoryMapping) -> None:
        with self._lock:
            self._mappings[mapping.id] = mapping.model_copy()

    def delete_mapping(self, mapping_id: str) -> bool:
        with self._lock:
            self._caches.pop(mapping_id, None)
            return self._mappings.pop(mapping_id, None) is not None

    def count_mappings(self) -> int:
        with self._lock:
            return len(self._mappings)

    def _project_mappings(self, project_id: str) -> List[RepositoryMapping]:
        mappings = [m for m in self._mappings.values() if m.project_id == project_id]
        mappings.sort(key=lambda m: (m.repository_name or "", m.local_path))
        return mappings
