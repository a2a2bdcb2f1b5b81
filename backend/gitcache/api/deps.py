"""FastAPI dependencies resolving services from the app's container."""

from fastapi import Request

from gitcache.container import ServiceContainer
from gitcache.services.cache_health_service import CacheHealthService
from gitcache.services.project_cache_manager import ProjectCacheManager
from gitcache.services.staleness_refresh_scheduler import StalenessRefreshScheduler


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_manager(request: Request) -> ProjectCacheManager:
    return get_container(request).manager


def get_scheduler(request: Request) -> StalenessRefreshScheduler:
    return get_container(request).scheduler


def get_health_service(request: Request) -> CacheHealthService:
    return get_container(request).health
