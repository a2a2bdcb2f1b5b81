"""Tests for StalenessRefreshScheduler."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from conftest import add_mapping, wait_until

from gitcache.dtos import BatchResult, RefreshOptions
from gitcache.services.batch_scan_coordinator import BatchScanCoordinator
from gitcache.services.exceptions import StoreError
from gitcache.services.repository_scanner import RepositoryScanner
from gitcache.services.staleness_refresh_scheduler import StalenessRefreshScheduler


def _scheduler(fake_git, store, warmup_seconds=0.05):
    coordinator = BatchScanCoordinator(RepositoryScanner(fake_git), store)
    return StalenessRefreshScheduler(store, coordinator, warmup_seconds=warmup_seconds)


class TestRefreshPass:
    """Tests for a single staleness pass."""

    def test_refreshes_oldest_batch_and_defers_rest(self, fake_git, store):
        now = datetime.now(timezone.utc)
        for i in range(7):
            fake_git.add_repo(f"/repos/r{i}", commits=1)
            add_mapping(store, f"m{i}", f"/repos/r{i}")
            store.upsert(f"m{i}", {}, now - timedelta(hours=30 + i))
        add_mapping(store, "fresh", "/repos/fresh")
        store.upsert("fresh", {}, now - timedelta(hours=1))
        scheduler = _scheduler(fake_git, store)

        stats = scheduler.refresh_stale_repositories(
            RefreshOptions(stale_threshold_hours=24, max_repositories_per_batch=5)
        )

        assert stats.total_repositories == 8
        assert stats.stale_repositories == 7
        assert stats.refreshed_repositories == 5
        assert stats.failed_repositories == 0
        assert stats.last_refresh_time is not None
        # Oldest first: m6 (36h) down to m2 (32h)
        assert sorted(fake_git.history_calls) == sorted(f"/repos/r{i}" for i in range(2, 7))

        remaining = store.list_older_than(24)
        assert {e.id for e in remaining} == {"m0", "m1"}

    def test_no_stale_repositories(self, fake_git, store):
        add_mapping(store, "m1", "/repos/a")
        store.upsert("m1", {}, datetime.now(timezone.utc))
        scheduler = _scheduler(fake_git, store)

        stats = scheduler.refresh_stale_repositories(RefreshOptions())

        assert stats.stale_repositories == 0
        assert stats.last_refresh_time is not None
        assert fake_git.probe_calls == []

    def test_store_failure_returns_previous_stats(self, fake_git):
        store = MagicMock()
        store.list_older_than.side_effect = StoreError("down")
        scheduler = _scheduler(fake_git, store)

        stats = scheduler.refresh_stale_repositories(RefreshOptions())

        assert stats.refreshed_repositories == 0
        assert stats.last_refresh_time is None
        assert scheduler.is_refresh_in_progress() is False

    def test_overlapping_pass_is_skipped(self, fake_git, store):
        gate = threading.Event()
        coordinator = MagicMock()

        def slow_scan(mappings, options):
            gate.wait(5)
            return BatchResult(successful=len(mappings))

        coordinator.scan_all.side_effect = slow_scan
        add_mapping(store, "m1", "/repos/a")
        scheduler = StalenessRefreshScheduler(store, coordinator)

        first = threading.Thread(target=scheduler.refresh_stale_repositories)
        first.start()
        assert wait_until(scheduler.is_refresh_in_progress)

        scheduler.refresh_stale_repositories()
        gate.set()
        first.join(5)

        assert coordinator.scan_all.call_count == 1
        assert scheduler.get_stats().refreshed_repositories == 1

    def test_batch_uses_force_refresh(self, fake_git, store):
        coordinator = MagicMock()
        coordinator.scan_all.return_value = BatchResult()
        add_mapping(store, "m1", "/repos/a")
        scheduler = StalenessRefreshScheduler(store, coordinator)

        scheduler.refresh_stale_repositories(RefreshOptions())

        mappings, options = coordinator.scan_all.call_args.args
        assert [m.id for m in mappings] == ["m1"]
        assert options.force_refresh is True


class TestProjectRefresh:
    """Tests for refresh_project_repositories."""

    def test_rescans_valid_project_mappings(self, fake_git, store):
        fake_git.add_repo("/repos/a", commits=2)
        add_mapping(store, "m1", "/repos/a")
        add_mapping(store, "m2", "/repos/gone")
        store.upsert("m2", {"is_valid_repository": False}, datetime.now(timezone.utc))
        add_mapping(store, "m3", "/repos/other", project_id="p2")
        scheduler = _scheduler(fake_git, store)

        assert scheduler.refresh_project_repositories("p1") is True
        assert fake_git.history_calls == ["/repos/a"]

    def test_project_without_mappings(self, fake_git, store):
        scheduler = _scheduler(fake_git, store)

        assert scheduler.refresh_project_repositories("empty") is True

    def test_failures_are_reported(self, fake_git, store):
        add_mapping(store, "m1", "/repos/missing")
        scheduler = _scheduler(fake_git, store)

        assert scheduler.refresh_project_repositories("p1") is False


class TestLifecycle:
    """Tests for start/stop."""

    def test_start_is_idempotent_and_runs_warmup_pass(self, fake_git, store):
        fake_git.add_repo("/repos/a", commits=1)
        add_mapping(store, "m1", "/repos/a")
        scheduler = _scheduler(fake_git, store)

        assert scheduler.start(RefreshOptions(refresh_interval_minutes=60)) is True
        assert scheduler.start(RefreshOptions(refresh_interval_minutes=60)) is False
        assert scheduler.is_running() is True
        assert scheduler.get_stats().next_refresh_time is not None

        assert wait_until(lambda: scheduler.get_stats().refreshed_repositories == 1)

        scheduler.stop()
        assert scheduler.is_running() is False
        assert scheduler.get_stats().next_refresh_time is None

    def test_disabled_auto_refresh_does_not_start(self, fake_git, store):
        scheduler = _scheduler(fake_git, store)

        assert scheduler.start(RefreshOptions(enable_auto_refresh=False)) is False
        assert scheduler.is_running() is False

    def test_stop_does_not_interrupt_running_pass(self, fake_git, store):
        gate = threading.Event()
        coordinator = MagicMock()

        def slow_scan(mappings, options):
            gate.wait(5)
            return BatchResult(successful=1)

        coordinator.scan_all.side_effect = slow_scan
        add_mapping(store, "m1", "/repos/a")
        scheduler = StalenessRefreshScheduler(store, coordinator, warmup_seconds=0.01)

        scheduler.start(RefreshOptions())
        assert wait_until(scheduler.is_refresh_in_progress)
        scheduler.stop()
        gate.set()

        assert wait_until(lambda: not scheduler.is_refresh_in_progress())
        assert scheduler.get_stats().refreshed_repositories == 1
