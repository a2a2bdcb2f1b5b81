"""Scan, refresh and health DTOs."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from gitcache.config import Settings
from gitcache.entities import CacheEntry


class ScanOptions(BaseModel):
    max_commits: int = Field(default=2000, ge=1)
    include_branches: bool = True
    include_remotes: bool = True
    include_stats: bool = True
    force_refresh: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "ScanOptions":
        values = {
            "max_commits": settings.SCAN_MAX_COMMITS,
            "include_branches": settings.SCAN_INCLUDE_BRANCHES,
            "include_remotes": settings.SCAN_INCLUDE_REMOTES,
            "include_stats": settings.SCAN_INCLUDE_STATS,
        }
        values.update(overrides)
        return cls(**values)


class MappingScanStatus(str, Enum):
    SUCCESSFUL = "successful"
    FAILED = "failed"
    SKIPPED = "skipped"


class ScanErrorItem(BaseModel):
    path: str
    error: str


class MappingScanReport(BaseModel):
    """Result of one mapping inside a batch, attributed only to that mapping."""

    mapping_id: str
    path: str
    status: MappingScanStatus
    error: Optional[str] = None
    commit_count: int = 0
    branch_count: int = 0
    contributor_count: int = 0
    entry: Optional[CacheEntry] = None  # Freshly scanned data, when the scan succeeded


class BatchResult(BaseModel):
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total_commits: int = 0
    total_branches: int = 0
    total_contributors: int = 0
    errors: List[ScanErrorItem] = Field(default_factory=list)
    reports: List[MappingScanReport] = Field(default_factory=list)


class RefreshOptions(BaseModel):
    stale_threshold_hours: float = Field(default=24, gt=0)
    max_repositories_per_batch: int = Field(default=5, ge=1)
    refresh_interval_minutes: float = Field(default=60, gt=0)
    enable_auto_refresh: bool = True

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> "RefreshOptions":
        values = {
            "stale_threshold_hours": settings.STALE_THRESHOLD_HOURS,
            "max_repositories_per_batch": settings.MAX_REPOSITORIES_PER_BATCH,
            "refresh_interval_minutes": settings.REFRESH_INTERVAL_MINUTES,
            "enable_auto_refresh": settings.ENABLE_AUTO_REFRESH,
        }
        values.update(overrides)
        return cls(**values)


class RefreshStats(BaseModel):
    total_repositories: int = 0
    stale_repositories: int = 0
    refreshed_repositories: int = 0
    failed_repositories: int = 0
    last_refresh_time: Optional[datetime] = None
    next_refresh_time: Optional[datetime] = None


class ProjectCacheHealth(BaseModel):
    total_repositories: int = 0
    healthy_repositories: int = 0
    stale_repositories: int = 0
    error_repositories: int = 0
    average_age_hours: float = 0.0
    oldest_cache: Optional[datetime] = None
    newest_cache: Optional[datetime] = None


class ProjectScanStats(BaseModel):
    total_repositories: int = 0
    git_repositories: int = 0
    total_commits: int = 0
    total_branches: int = 0
    total_contributors: int = 0
    repositories_with_errors: int = 0
    last_scan_date: Optional[datetime] = None
