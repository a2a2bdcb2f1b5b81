"""
CacheEntry entity - the durable, per-mapping record of the latest scan.

Stored under the ``git_cache`` sub-document of a repository mapping row.

Key invariants:
- ``last_updated_at`` never moves backwards for a mapping (writes are
  accepted only when they are not older than the stored value)
- A failed scan only touches ``scan_error`` and ``last_updated_at``;
  commit data from an earlier successful scan is kept
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from gitcache.entities.git_history import (
    BranchRecord,
    CommitRecord,
    RemoteUrls,
    TagRecord,
)


class ContributorSummary(BaseModel):
    email: str
    name: str
    commit_count: int
    last_commit_date: Optional[datetime] = None
    total_additions: int = 0
    total_deletions: int = 0


class RecentActivity(BaseModel):
    commits_last_30_days: int = 0
    last_commit_date: Optional[datetime] = None
    active_branch: Optional[str] = None
    is_active: bool = False


class CodeMetrics(BaseModel):
    total_additions: int = 0
    total_deletions: int = 0
    total_files: int = 0
    net_lines: int = 0
    average_commit_size: int = 0


class RepositoryHealth(BaseModel):
    has_remotes: bool = False
    has_multiple_branches: bool = False
    has_recent_activity: bool = False
    is_up_to_date: bool = True


class CacheSummary(BaseModel):
    total_commits: int = 0
    total_branches: int = 0
    total_contributors: int = 0
    total_remotes: int = 0
    total_tags: int = 0
    first_commit_date: Optional[datetime] = None
    last_commit_date: Optional[datetime] = None
    recent_activity: RecentActivity = Field(default_factory=RecentActivity)
    code_metrics: CodeMetrics = Field(default_factory=CodeMetrics)
    repository_health: RepositoryHealth = Field(default_factory=RepositoryHealth)


class CacheEntry(BaseModel):
    commits: List[CommitRecord] = Field(default_factory=list)
    branches: List[BranchRecord] = Field(default_factory=list)
    remotes: Dict[str, RemoteUrls] = Field(default_factory=dict)
    tags: List[TagRecord] = Field(default_factory=list)
    contributors: List[ContributorSummary] = Field(default_factory=list)
    summary: Optional[CacheSummary] = None

    current_branch: Optional[str] = None
    current_head: Optional[str] = None

    last_updated_at: Optional[datetime] = None
    is_valid_repository: bool = True
    scan_error: Optional[str] = None

    @property
    def has_commits(self) -> bool:
        return bool(self.commits)
