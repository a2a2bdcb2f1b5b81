"""Repository layer for database operations"""

from .base import BaseRepository
from .factory import create_store
from .git_cache_store import GitCacheStore
from .memory_git_cache import InMemoryGitCacheStore
from .mongo_git_cache import MongoGitCacheStore

__all__ = [
    "BaseRepository",
    "GitCacheStore",
    "InMemoryGitCacheStore",
    "MongoGitCacheStore",
    "create_store",
]
