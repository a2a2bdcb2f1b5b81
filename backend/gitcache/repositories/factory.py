"""Store backend selection"""

from __future__ import annotations

import logging
from typing import Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from gitcache.config import Settings
from gitcache.repositories.git_cache_store import GitCacheStore
from gitcache.repositories.memory_git_cache import InMemoryGitCacheStore
from gitcache.repositories.mongo_git_cache import MongoGitCacheStore

logger = logging.getLogger(__name__)


def create_store(settings: Settings, db: Optional[Database] = None) -> GitCacheStore:
    """Build the cache store configured by ``STORE_BACKEND``."""
    if settings.STORE_BACKEND == "memory":
        logger.info("Using in-memory cache store")
        return InMemoryGitCacheStore()

    if settings.STORE_BACKEND == "mongo":
        if db is None:
            from gitcache.database.ensure_indexes import ensure_indexes
            from gitcache.database.mongo import get_database

            db = get_database(settings)
            try:
                ensure_indexes(db, settings.MONGODB_CACHE_COLLECTION)
            except PyMongoError as e:
                logger.warning(f"Failed to ensure database indexes: {e}")
        logger.info(f"Using MongoDB cache store ({settings.MONGODB_DB_NAME}.{settings.MONGODB_CACHE_COLLECTION})")
        return MongoGitCacheStore(db, settings.MONGODB_CACHE_COLLECTION)

    raise ValueError(f"Unsupported store backend: {settings.STORE_BACKEND}")
