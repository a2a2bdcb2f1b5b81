from .base import BaseEntity
from .git_cache import (
    CacheEntry,
    CacheSummary,
    CodeMetrics,
    ContributorSummary,
    RecentActivity,
    RepositoryHealth,
)
from .git_history import (
    BranchRecord,
    CommitAuthor,
    CommitRecord,
    CommitStats,
    RemoteUrls,
    RepositoryHistory,
    RepositoryState,
    TagRecord,
)
from .repository_mapping import MappingCacheRecord, RepositoryMapping, StaleEntry

__all__ = [
    # Base
    "BaseEntity",
    # Git history
    "BranchRecord",
    "CommitAuthor",
    "CommitRecord",
    "CommitStats",
    "RemoteUrls",
    "RepositoryHistory",
    "RepositoryState",
    "TagRecord",
    # Cache
    "CacheEntry",
    "CacheSummary",
    "CodeMetrics",
    "ContributorSummary",
    "RecentActivity",
    "RepositoryHealth",
    # Mappings
    "MappingCacheRecord",
    "RepositoryMapping",
    "StaleEntry",
]
