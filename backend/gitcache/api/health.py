"""Health check endpoint."""

from fastapi import APIRouter, Depends

from gitcache.api.deps import get_container
from gitcache.container import ServiceContainer
from gitcache.services.exceptions import StoreError

router = APIRouter()


@router.get("/health")
def health_check(container: ServiceContainer = Depends(get_container)):
    try:
        repositories = container.store.count_mappings()
        store_status = "ok"
    except StoreError:
        repositories = None
        store_status = "unavailable"

    return {
        "status": "ok" if store_status == "ok" else "degraded",
        "store": store_status,
        "git_available": container.scanner.is_available(),
        "scheduler_running": container.scheduler.is_running(),
        "repositories": repositories,
    }
