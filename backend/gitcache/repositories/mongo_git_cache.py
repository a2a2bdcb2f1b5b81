"""MongoDB-backed cache store (collection ``repository_local_mappings``)"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING
from pymongo.database import Database

from gitcache.entities import (
    CacheEntry,
    MappingCacheRecord,
    RepositoryMapping,
    StaleEntry,
)
from gitcache.repositories.base import BaseRepository, mongo_operation
from gitcache.repositories.git_cache_store import GitCacheStore

logger = logging.getLogger(__name__)

CACHE_FIELD = "git_cache"
LAST_UPDATED_FIELD = f"{CACHE_FIELD}.last_updated_at"
VALID_FIELD = f"{CACHE_FIELD}.is_valid_repository"

PROJECT_SORT = [("repository_name", ASCENDING), ("local_path", ASCENDING)]


def _not_newer_than(as_of: datetime) -> Dict[str, Any]:
    # {field: None} also matches documents where the field is missing
    return {
        "$or": [
            {LAST_UPDATED_FIELD: None},
            {LAST_UPDATED_FIELD: {"$lte": as_of}},
        ]
    }


class MongoGitCacheStore(BaseRepository[RepositoryMapping], GitCacheStore):
    """Mapping rows with the cache embedded under ``git_cache``."""

    def __init__(self, db: Database, collection_name: str = "repository_local_mappings"):
        super().__init__(db, collection_name, RepositoryMapping)

    def get(self, mapping_id: str) -> Optional[CacheEntry]:
        doc = self.find_one_raw({"_id": mapping_id}, {CACHE_FIELD: 1})
        if not doc or not doc.get(CACHE_FIELD):
            return None
        return CacheEntry.model_validate(doc[CACHE_FIELD])

    @mongo_operation("upsert")
    def upsert(self, mapping_id: str, fields: Dict[str, Any], as_of: datetime) -> bool:
        update = {f"{CACHE_FIELD}.{key}": value for key, value in fields.items()}
        update[LAST_UPDATED_FIELD] = as_of

        query = {"_id": mapping_id, **_not_newer_than(as_of)}
        # No upsert: a mapping deleted mid-scan must not come back as a cache-only row
        result = self.collection.update_one(query, {"$set": update})
        if result.matched_count == 0:
            logger.info(
                f"Discarded cache write for {mapping_id}: mapping missing or stored entry newer than {as_of}"
            )
            return False
        return True

    def list_older_than(
        self, threshold_hours: float, now: Optional[datetime] = None
    ) -> List[StaleEntry]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=threshold_hours)
        query = {
            "local_path": {"$exists": True},
            VALID_FIELD: {"$ne": False},
            "$or": [
                {LAST_UPDATED_FIELD: None},
                {LAST_UPDATED_FIELD: {"$lt": cutoff}},
            ],
        }
        docs = self.find_many(
            query,
            sort=[(LAST_UPDATED_FIELD, ASCENDING)],
            projection={"local_path": 1, "project_id": 1, LAST_UPDATED_FIELD: 1},
        )
        return [
            StaleEntry(
                id=str(doc["_id"]),
                local_path=doc["local_path"],
                project_id=doc["project_id"],
                last_updated_at=(doc.get(CACHE_FIELD) or {}).get("last_updated_at"),
            )
            for doc in docs
        ]

    def find_project_records(
        self, project_id: str, user_id: Optional[str] = None
    ) -> List[MappingCacheRecord]:
        query: Dict[str, Any] = {"project_id": project_id}
        if user_id is not None:
            query["user_id"] = user_id
        docs = self.find_many(query, sort=PROJECT_SORT)

        records = []
        for doc in docs:
            cache_doc = doc.pop(CACHE_FIELD, None)
            records.append(
                MappingCacheRecord(
                    mapping=RepositoryMapping.model_validate(doc),
                    cache=CacheEntry.model_validate(cache_doc) if cache_doc else None,
                )
            )
        return records

    def find_project_mappings(
        self, project_id: str, only_valid: bool = False
    ) -> List[RepositoryMapping]:
        query: Dict[str, Any] = {"project_id": project_id}
        if only_valid:
            query[VALID_FIELD] = {"$ne": False}
        docs = self.find_many(query, sort=PROJECT_SORT, projection={CACHE_FIELD: 0})
        return [RepositoryMapping.model_validate(doc) for doc in docs]

    def save_mapping(self, mapping: RepositoryMapping) -> None:
        fields = mapping.model_dump(exclude={"id"})
        self.update_one_raw({"_id": mapping.id}, {"$set": fields}, upsert=True)

    def delete_mapping(self, mapping_id: str) -> bool:
        return self.delete_one(mapping_id)

    def count_mappings(self) -> int:
        return self.count({"local_path": {"$exists": True}})

    def close(self) -> None:
        self.db.client.close()
