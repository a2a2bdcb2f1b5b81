"""
Projects API - cached repository snapshots and their refresh controls.

Endpoints:
- GET /projects/{project_id}/snapshot - In-memory snapshot (no I/O)
- POST /projects/{project_id}/initialize - Load cache, refresh, optionally auto-refresh
- POST /projects/{project_id}/refresh - Coalesced refresh
- POST|DELETE /projects/{project_id}/auto-refresh - Per-project refresh timer
- GET /projects/{project_id}/cache-health - Cache health summary
- GET /projects/{project_id}/scan-stats - Aggregated scan statistics
- POST /projects/{project_id}/rescan - Force rescan of every mapping
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gitcache.api.deps import (
    get_container,
    get_health_service,
    get_manager,
    get_scheduler,
)
from gitcache.container import ServiceContainer
from gitcache.dtos import ProjectCacheHealth, ProjectScanStats, ProjectSnapshot
from gitcache.services.cache_health_service import CacheHealthService
from gitcache.services.project_cache_manager import ProjectCacheManager
from gitcache.services.staleness_refresh_scheduler import StalenessRefreshScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.get("/{project_id}/snapshot", response_model=ProjectSnapshot)
def get_snapshot(
    project_id: str,
    manager: ProjectCacheManager = Depends(get_manager),
):
    snapshot = manager.get_cached_data(project_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached data for project {project_id}",
        )
    return snapshot


@router.post("/{project_id}/initialize")
def initialize_project(
    project_id: str,
    user_id: Optional[str] = Query(None),
    auto_refresh: bool = Query(True),
    manager: ProjectCacheManager = Depends(get_manager),
):
    """Load the durable cache and bring the snapshot up to date."""
    from_cache = manager.initialize_project(project_id, user_id, auto_refresh=auto_refresh)
    return {
        "project_id": project_id,
        "from_cache": from_cache,
        "auto_refresh": manager.is_auto_refresh_running(project_id),
    }


@router.post("/{project_id}/refresh")
def refresh_project(
    project_id: str,
    user_id: Optional[str] = Query(None),
    silent: bool = Query(False),
    manager: ProjectCacheManager = Depends(get_manager),
):
    started = manager.refresh_git_data(project_id, user_id, silent=silent)
    return {"project_id": project_id, "started": started}


@router.post("/{project_id}/auto-refresh")
def start_auto_refresh(
    project_id: str,
    user_id: Optional[str] = Query(None),
    interval_ms: Optional[int] = Query(None, ge=500),
    manager: ProjectCacheManager = Depends(get_manager),
):
    started = manager.start_auto_refresh(project_id, user_id, interval_ms)
    return {"project_id": project_id, "started": started, "running": True}


@router.delete("/{project_id}/auto-refresh")
def stop_auto_refresh(
    project_id: str,
    manager: ProjectCacheManager = Depends(get_manager),
):
    stopped = manager.stop_auto_refresh(project_id)
    return {"project_id": project_id, "stopped": stopped, "running": False}


@router.get("/{project_id}/cache-health", response_model=ProjectCacheHealth)
def get_cache_health(
    project_id: str,
    stale_threshold_hours: Optional[float] = Query(None, gt=0),
    container: ServiceContainer = Depends(get_container),
    health: CacheHealthService = Depends(get_health_service),
):
    threshold = stale_threshold_hours or container.settings.STALE_THRESHOLD_HOURS
    return health.get_project_cache_health(project_id, stale_threshold_hours=threshold)


@router.get("/{project_id}/scan-stats", response_model=ProjectScanStats)
def get_scan_stats(
    project_id: str,
    health: CacheHealthService = Depends(get_health_service),
):
    return health.get_project_scan_stats(project_id)


@router.post("/{project_id}/rescan")
def rescan_project(
    project_id: str,
    scheduler: StalenessRefreshScheduler = Depends(get_scheduler),
):
    """Force-rescan every repository of the project (blocks until done)."""
    success = scheduler.refresh_project_repositories(project_id)
    return {"project_id": project_id, "success": success}
