"""Per-project cache health and scan statistics, computed on demand from the store."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from gitcache.dtos import ProjectCacheHealth, ProjectScanStats
from gitcache.repositories import GitCacheStore

logger = logging.getLogger(__name__)


class CacheHealthService:
    def __init__(self, store: GitCacheStore):
        self.store = store

    def get_project_cache_health(
        self,
        project_id: str,
        stale_threshold_hours: float = 24,
        now: Optional[datetime] = None,
    ) -> ProjectCacheHealth:
        """
        Classify every mapping of a project.

        - healthy: valid repository, no scan error, updated within the threshold
        - stale: valid repository, no scan error, older than the threshold or never scanned
        - error: known non-repository or carrying a scan error

        Ages are averaged over valid repositories that have been scanned.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=stale_threshold_hours)
        records = self.store.find_project_records(project_id)

        health = ProjectCacheHealth(total_repositories=len(records))
        timestamps: List[datetime] = []
        for record in records:
            cache = record.cache
            is_valid = cache is None or cache.is_valid_repository
            scan_error = cache.scan_error if cache else None
            last_updated = cache.last_updated_at if cache else None

            if not is_valid or scan_error:
                health.error_repositories += 1
            elif last_updated is not None and last_updated >= cutoff:
                health.healthy_repositories += 1
            else:
                health.stale_repositories += 1

            if is_valid and last_updated is not None:
                timestamps.append(last_updated)

        if timestamps:
            ages = [(now - ts).total_seconds() / 3600 for ts in timestamps]
            health.average_age_hours = sum(ages) / len(ages)
            health.oldest_cache = min(timestamps)
            health.newest_cache = max(timestamps)

        return health

    def get_project_scan_stats(self, project_id: str) -> ProjectScanStats:
        records = self.store.find_project_records(project_id)

        stats = ProjectScanStats(total_repositories=len(records))
        for record in records:
            cache = record.cache
            if cache is None:
                continue
            if cache.is_valid_repository:
                stats.git_repositories += 1
            if cache.scan_error:
                stats.repositories_with_errors += 1
            stats.total_commits += len(cache.commits)
            stats.total_branches += len(cache.branches)
            stats.total_contributors += len(cache.contributors)
            if cache.last_updated_at and (
                stats.last_scan_date is None or cache.last_updated_at > stats.last_scan_date
            ):
                stats.last_scan_date = cache.last_updated_at

        logger.debug(f"Scan stats for project {project_id}: {stats.model_dump()}")
        return stats
