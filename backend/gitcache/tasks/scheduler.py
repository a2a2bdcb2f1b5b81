"""Periodic tasks that keep repository caches fresh."""
from __future__ import annotations

from typing import Any, Dict, Optional

from gitcache.celery_app import celery_app
from gitcache.tasks.base import CacheTask


@celery_app.task(bind=True, base=CacheTask, name="gitcache.tasks.scheduler.refresh_stale_repositories")
def refresh_stale_repositories(
    self: CacheTask,
    stale_threshold_hours: Optional[float] = None,
    max_repositories_per_batch: Optional[int] = None,
) -> Dict[str, Any]:
    """Periodic job that rescans the oldest stale repository caches."""
    container = self.container
    overrides: Dict[str, Any] = {}
    if stale_threshold_hours is not None:
        overrides["stale_threshold_hours"] = stale_threshold_hours
    if max_repositories_per_batch is not None:
        overrides["max_repositories_per_batch"] = max_repositories_per_batch

    options = container.refresh_options.model_copy(update=overrides)
    stats = container.scheduler.refresh_stale_repositories(options)
    return stats.model_dump(mode="json")


@celery_app.task(bind=True, base=CacheTask, name="gitcache.tasks.scheduler.refresh_project_repositories")
def refresh_project_repositories(self: CacheTask, project_id: str) -> Dict[str, Any]:
    """Force-rescan every repository of one project."""
    success = self.container.scheduler.refresh_project_repositories(project_id)
    return {"project_id": project_id, "success": success}
