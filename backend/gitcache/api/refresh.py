"""
Refresh API - staleness scheduler status and manual passes.

Endpoints:
- GET /refresh/stats - Current RefreshStats and scheduler state
- POST /refresh/run - Run one staleness pass now
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from gitcache.api.deps import get_container
from gitcache.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/refresh", tags=["Refresh"])


@router.get("/stats")
def get_refresh_stats(container: ServiceContainer = Depends(get_container)):
    scheduler = container.scheduler
    return {
        "running": scheduler.is_running(),
        "refresh_in_progress": scheduler.is_refresh_in_progress(),
        "stats": scheduler.get_stats(),
    }


@router.post("/run")
def run_refresh(
    stale_threshold_hours: Optional[float] = Query(None, gt=0),
    max_repositories_per_batch: Optional[int] = Query(None, ge=1),
    container: ServiceContainer = Depends(get_container),
):
    overrides = {}
    if stale_threshold_hours is not None:
        overrides["stale_threshold_hours"] = stale_threshold_hours
    if max_repositories_per_batch is not None:
        overrides["max_repositories_per_batch"] = max_repositories_per_batch
    options = container.refresh_options.model_copy(update=overrides)

    return container.scheduler.refresh_stale_repositories(options)
