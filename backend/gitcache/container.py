"""Process-wide service wiring."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from gitcache.config import Settings, settings as default_settings
from gitcache.dtos import RefreshOptions, ScanOptions
from gitcache.repositories import GitCacheStore, create_store
from gitcache.services.batch_scan_coordinator import BatchScanCoordinator
from gitcache.services.cache_health_service import CacheHealthService
from gitcache.services.project_cache_manager import ProjectCacheManager
from gitcache.services.repository_scanner import RepositoryScanner
from gitcache.services.staleness_refresh_scheduler import StalenessRefreshScheduler
from gitcache.utils.git import GitCli

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    store: GitCacheStore
    scanner: RepositoryScanner
    coordinator: BatchScanCoordinator
    scheduler: StalenessRefreshScheduler
    manager: ProjectCacheManager
    health: CacheHealthService

    @property
    def refresh_options(self) -> RefreshOptions:
        return RefreshOptions.from_settings(self.settings)

    def start(self) -> bool:
        """Start the staleness scheduler when auto-refresh is enabled."""
        return self.scheduler.start(self.refresh_options)

    def shutdown(self) -> None:
        self.scheduler.cleanup()
        self.manager.shutdown()
        self.store.close()
        logger.info("Services shut down")


def build_container(
    settings: Optional[Settings] = None,
    store: Optional[GitCacheStore] = None,
    git: Optional[GitCli] = None,
) -> ServiceContainer:
    """Construct one instance of every service, sharing a store and scanner."""
    settings = settings or default_settings
    store = store or create_store(settings)
    scanner = RepositoryScanner(git or GitCli(timeout=settings.GIT_COMMAND_TIMEOUT))
    coordinator = BatchScanCoordinator(
        scanner,
        store,
        concurrency=settings.SCAN_CONCURRENCY,
        skip_window_hours=settings.SCAN_SKIP_WINDOW_HOURS,
    )
    scheduler = StalenessRefreshScheduler(
        store,
        coordinator,
        scan_options=ScanOptions.from_settings(settings),
        warmup_seconds=settings.REFRESH_WARMUP_SECONDS,
    )
    manager = ProjectCacheManager(store, scanner, coordinator, settings)
    return ServiceContainer(
        settings=settings,
        store=store,
        scanner=scanner,
        coordinator=coordinator,
        scheduler=scheduler,
        manager=manager,
        health=CacheHealthService(store),
    )
