"""
Staleness refresh scheduler - periodically rescans aged-out caches.

Each pass asks the store for mappings whose cache is missing or older than
the threshold, rescans at most ``max_repositories_per_batch`` of them (oldest
first) and defers the rest to the next tick. Passes never overlap.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from gitcache.dtos import RefreshOptions, RefreshStats, ScanOptions
from gitcache.repositories import GitCacheStore
from gitcache.services.batch_scan_coordinator import BatchScanCoordinator
from gitcache.services.exceptions import StoreError
from gitcache.utils.timers import PeriodicTimer

logger = logging.getLogger(__name__)


class StalenessRefreshScheduler:
    def __init__(
        self,
        store: GitCacheStore,
        coordinator: BatchScanCoordinator,
        scan_options: Optional[ScanOptions] = None,
        warmup_seconds: float = 5,
    ):
        self.store = store
        self.coordinator = coordinator
        self.scan_options = (scan_options or ScanOptions()).model_copy(
            update={"force_refresh": True}
        )
        self.warmup_seconds = warmup_seconds

        self._options = RefreshOptions()
        self._timer: Optional[PeriodicTimer] = None
        self._state_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._stats = RefreshStats()

    def start(self, options: Optional[RefreshOptions] = None) -> bool:
        """
        Arm the repeating timer; an initial pass runs after the warm-up delay.

        Returns:
            True if the timer was started by this call
        """
        options = options or RefreshOptions()
        if not options.enable_auto_refresh:
            logger.info("Staleness auto-refresh is disabled")
            return False

        with self._state_lock:
            if self._timer is not None:
                logger.info("Staleness auto-refresh is already running")
                return False

            interval = options.refresh_interval_minutes * 60
            self._options = options
            self._timer = PeriodicTimer(
                interval,
                self._tick,
                initial_delay=self.warmup_seconds,
                name="staleness-refresh",
            )
            self._stats.next_refresh_time = datetime.now(timezone.utc) + timedelta(seconds=interval)
            self._timer.start()

        logger.info(
            f"Started staleness auto-refresh (interval: {options.refresh_interval_minutes} minutes)"
        )
        return True

    def stop(self) -> None:
        """Cancel future passes; a pass already running is left to finish."""
        with self._state_lock:
            if self._timer is None:
                return
            self._timer.cancel()
            self._timer = None
            self._stats.next_refresh_time = None
        logger.info("Staleness auto-refresh stopped")

    def is_running(self) -> bool:
        with self._state_lock:
            return self._timer is not None

    def is_refresh_in_progress(self) -> bool:
        return self._refresh_lock.locked()

    def get_stats(self) -> RefreshStats:
        with self._state_lock:
            return self._stats.model_copy()

    def cleanup(self) -> None:
        self.stop()

    def _tick(self) -> None:
        self.refresh_stale_repositories(self._options)
        with self._state_lock:
            if self._timer is not None:
                self._stats.next_refresh_time = datetime.now(timezone.utc) + timedelta(
                    seconds=self._timer.interval
                )

    def refresh_stale_repositories(
        self,
        options: Optional[RefreshOptions] = None,
        now: Optional[datetime] = None,
    ) -> RefreshStats:
        """Run one staleness pass; skipped if another pass is in progress."""
        options = options or self._options
        if not self._refresh_lock.acquire(blocking=False):
            logger.info("Refresh already in progress, skipping")
            return self.get_stats()

        try:
            logger.info(
                f"Starting stale repository refresh "
                f"(threshold: {options.stale_threshold_hours}h, "
                f"batch size: {options.max_repositories_per_batch})"
            )
            try:
                stale = self.store.list_older_than(options.stale_threshold_hours, now=now)
                total = self.store.count_mappings()
            except StoreError as e:
                logger.error(f"Failed to get stale repositories: {e}")
                return self.get_stats()

            with self._state_lock:
                self._stats.total_repositories = total
                self._stats.stale_repositories = len(stale)

            if not stale:
                logger.info("No stale repositories found")
                with self._state_lock:
                    self._stats.last_refresh_time = datetime.now(timezone.utc)
                return self.get_stats()

            batch = stale[: options.max_repositories_per_batch]
            if len(batch) < len(stale):
                logger.info(
                    f"Refreshing {len(batch)} of {len(stale)} stale repositories (batch limit); "
                    f"{len(stale) - len(batch)} remaining for the next cycle"
                )

            result = self.coordinator.scan_all(
                [entry.to_mapping() for entry in batch], self.scan_options
            )

            with self._state_lock:
                self._stats.refreshed_repositories = result.successful
                self._stats.failed_repositories = result.failed
                self._stats.last_refresh_time = datetime.now(timezone.utc)

            logger.info(
                f"Refresh complete: {result.successful} successful, {result.failed} failed"
            )
            return self.get_stats()
        finally:
            self._refresh_lock.release()

    def refresh_project_repositories(
        self, project_id: str, scan_options: Optional[ScanOptions] = None
    ) -> bool:
        """
        Force-rescan every known repository of one project.

        Returns:
            True when no mapping failed (also when the project has none)
        """
        options = (scan_options or self.scan_options).model_copy(update={"force_refresh": True})
        try:
            mappings = self.store.find_project_mappings(project_id, only_valid=True)
        except StoreError as e:
            logger.error(f"Failed to get repositories for project {project_id}: {e}")
            return False

        if not mappings:
            logger.info(f"No repositories found for project {project_id}")
            return True

        logger.info(f"Refreshing {len(mappings)} repositories for project {project_id}")
        result = self.coordinator.scan_all(mappings, options)
        return result.failed == 0
