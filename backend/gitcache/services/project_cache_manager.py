"""
Project cache manager - the in-memory read model of every project's repositories.

One instance per process (built by the service container). It is the only
writer of ``ProjectSnapshot``s: reads are served from memory, refreshes are
coalesced per project, and every published snapshot is pushed to the
project's subscribers.

Refresh flow:
    1. Probe each mapping's lightweight state (branch, head, status)
    2. Reuse the durable cache when it is fresh, else queue a background rescan
    3. Publish the snapshot built from what is known now
    4. Rescans merge their result into the snapshot and publish again
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from gitcache.config import Settings
from gitcache.dtos import (
    ProjectSnapshot,
    ScanOptions,
    SnapshotBranch,
    SnapshotCommit,
    SnapshotUser,
    UncommittedChange,
)
from gitcache.entities import CacheEntry, RepositoryMapping, RepositoryState
from gitcache.repositories import GitCacheStore
from gitcache.services.batch_scan_coordinator import GIT_UNAVAILABLE, BatchScanCoordinator
from gitcache.services.exceptions import GitCapabilityUnavailableError, StoreError
from gitcache.services.repository_scanner import RepositoryScanner, parse_status_lines
from gitcache.utils.timers import PeriodicTimer

logger = logging.getLogger(__name__)

Listener = Callable[[str, ProjectSnapshot], None]
ChangeKey = FrozenSet[Tuple[str, str]]

DEFAULT_BRANCH = "main"


class Subscription:
    """Handle returned by ``subscribe``; ``unsubscribe`` is idempotent."""

    def __init__(self, manager: "ProjectCacheManager", project_id: str, token: int):
        self._manager = manager
        self.project_id = project_id
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._manager._remove_listener(self.project_id, self._token)
            self._active = False


@dataclass
class _MappingView:
    """One mapping's share of a project snapshot."""

    mapping: RepositoryMapping
    branch: SnapshotBranch
    commits: List[SnapshotCommit] = field(default_factory=list)
    users: List[SnapshotUser] = field(default_factory=list)
    changes: List[UncommittedChange] = field(default_factory=list)
    state: Optional[RepositoryState] = None
    cache: Optional[CacheEntry] = None


def _build_view(
    mapping: RepositoryMapping,
    cache: Optional[CacheEntry],
    state: Optional[RepositoryState],
    user_status: str,
) -> _MappingView:
    name = mapping.display_name
    path = mapping.local_path

    changes = []
    if state is not None:
        for index, (file_path, change_type, status) in enumerate(
            parse_status_lines(state.status_lines)
        ):
            changes.append(
                UncommittedChange(
                    id=f"{mapping.id}-{index}",
                    file_path=file_path,
                    change_type=change_type,
                    status=status,
                    repository=name,
                    local_path=path,
                )
            )

    commits: List[SnapshotCommit] = []
    users: List[SnapshotUser] = []
    cached_local: List[str] = []
    cached_remote: List[str] = []
    cached_urls: Dict[str, str] = {}
    if cache is not None:
        commits = [
            SnapshotCommit(**commit.model_dump(), repository=name, local_path=path)
            for commit in cache.commits
        ]
        cached_local = [b.name for b in cache.branches if b.is_local]
        cached_remote = [b.name for b in cache.branches if b.is_remote]
        cached_urls = {
            remote: urls.fetch or urls.push or "" for remote, urls in cache.remotes.items()
        }

    if state is not None:
        current_branch = state.branch or DEFAULT_BRANCH
        branch = SnapshotBranch(
            name=name,
            path=path,
            branch=current_branch,
            head=state.head or (cache.current_head if cache else None),
            dirty=state.dirty or bool(changes),
            ahead=state.ahead,
            behind=state.behind,
            local_branches=cached_local or state.local_branches,
            remote_branches=cached_remote or state.remote_branches,
            remote_urls=cached_urls or state.remote_urls,
            last_checked=cache.last_updated_at if cache else None,
            from_cache=cache is not None,
        )
    else:
        current_branch = (cache.current_branch if cache else None) or DEFAULT_BRANCH
        head = None
        if cache is not None:
            head = cache.current_head or (cache.commits[0].sha if cache.commits else None)
        branch = SnapshotBranch(
            name=name,
            path=path,
            branch=current_branch,
            head=head,
            local_branches=cached_local,
            remote_branches=cached_remote,
            remote_urls=cached_urls,
            last_checked=cache.last_updated_at if cache else None,
            from_cache=True,
        )

    if cache is not None:
        for contributor in cache.contributors:
            users.append(
                SnapshotUser(
                    user_id=contributor.email or contributor.name,
                    user_name=contributor.name,
                    user_email=contributor.email,
                    local_path=path,
                    current_branch=current_branch,
                    status=user_status,
                )
            )

    return _MappingView(
        mapping=mapping,
        branch=branch,
        commits=commits,
        users=users,
        changes=changes,
        state=state,
        cache=cache,
    )


def _newer_cache(
    stored: Optional[CacheEntry], live: Optional[CacheEntry]
) -> Optional[CacheEntry]:
    """The live entry if a rescan merged it after ``stored`` was read."""
    if live is None or live.last_updated_at is None:
        return stored
    if stored is None or stored.last_updated_at is None:
        return live
    return live if live.last_updated_at > stored.last_updated_at else stored


class ProjectCacheManager:
    """
    Lock order: a project's delivery lock, then ``_lock``. ``_lock`` is never
    held while a delivery lock is acquired or while listeners run.
    """

    def __init__(
        self,
        store: GitCacheStore,
        scanner: RepositoryScanner,
        coordinator: BatchScanCoordinator,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.scanner = scanner
        self.coordinator = coordinator

        settings = settings or Settings()
        self.freshness = timedelta(minutes=settings.PROJECT_CACHE_FRESHNESS_MINUTES)
        self.auto_refresh_interval_ms = settings.PROJECT_AUTO_REFRESH_INTERVAL_MS
        self.initial_refresh_delay_ms = settings.PROJECT_INITIAL_REFRESH_DELAY_MS
        self.rescan_options = ScanOptions.from_settings(settings, force_refresh=True)

        self._lock = threading.RLock()
        self._snapshots: Dict[str, ProjectSnapshot] = {}
        self._views: Dict[str, Dict[str, _MappingView]] = {}
        self._listeners: Dict[str, Dict[int, Listener]] = {}
        self._next_token = 0
        self._delivery_locks: Dict[str, threading.RLock] = {}
        self._published_seq: Dict[str, int] = {}
        self._delivered_seq: Dict[str, int] = {}
        self._in_flight: Set[str] = set()
        self._timers: Dict[str, PeriodicTimer] = {}
        self._delayed: Dict[str, threading.Timer] = {}
        self._last_changes: Dict[str, ChangeKey] = {}
        self._pending_rescans: Set[str] = set()
        self._rescan_executor = ThreadPoolExecutor(
            max_workers=settings.RESCAN_WORKERS, thread_name_prefix="project-rescan"
        )

    # ------------------------------------------------------------------
    # Reads and subscriptions
    # ------------------------------------------------------------------

    def get_cached_data(self, project_id: str) -> Optional[ProjectSnapshot]:
        """Current snapshot, or None. Never performs I/O."""
        with self._lock:
            snapshot = self._snapshots.get(project_id)
        if snapshot is None:
            logger.debug(f"Cache miss for project {project_id}")
        return snapshot

    def subscribe(self, project_id: str, listener: Listener) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners.setdefault(project_id, {})[token] = listener
        logger.debug(f"Listener subscribed for project {project_id}")
        return Subscription(self, project_id, token)

    def _remove_listener(self, project_id: str, token: int) -> None:
        with self._lock:
            listeners = self._listeners.get(project_id)
            if listeners is None:
                return
            listeners.pop(token, None)
            if not listeners:
                del self._listeners[project_id]
        logger.debug(f"Listener unsubscribed for project {project_id}")

    def listener_count(self, project_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(project_id, {}))

    # ------------------------------------------------------------------
    # Snapshot publication
    # ------------------------------------------------------------------

    def _delivery_lock(self, project_id: str) -> threading.RLock:
        with self._lock:
            return self._delivery_locks.setdefault(project_id, threading.RLock())

    def _publish(self, project_id: str, **fields) -> ProjectSnapshot:
        """Replace the project's snapshot and notify its listeners in order."""
        with self._delivery_lock(project_id):
            with self._lock:
                views = self._views.get(project_id)
                if views is not None:
                    ordered = list(views.values())
                    fields.setdefault("branches", [v.branch for v in ordered])
                    fields.setdefault("commits", [c for v in ordered for c in v.commits])
                    fields.setdefault("users", [u for v in ordered for u in v.users])
                    fields.setdefault("uncommitted_changes", [c for v in ordered for c in v.changes])
                fields["last_updated"] = datetime.now(timezone.utc)
                snapshot, seq, listeners = self._replace_snapshot(project_id, fields)
            self._deliver(project_id, snapshot, seq, listeners)
        return snapshot

    def _set_status(self, project_id: str, **fields) -> None:
        """Update loading/error flags without touching repository data."""
        with self._delivery_lock(project_id):
            with self._lock:
                snapshot, seq, listeners = self._replace_snapshot(project_id, fields)
            self._deliver(project_id, snapshot, seq, listeners)

    def _replace_snapshot(
        self, project_id: str, fields: Dict
    ) -> Tuple[ProjectSnapshot, int, List[Listener]]:
        # Caller holds _lock
        current = self._snapshots.get(project_id) or ProjectSnapshot()
        snapshot = current.model_copy(update=fields)
        self._snapshots[project_id] = snapshot
        seq = self._published_seq.get(project_id, 0) + 1
        self._published_seq[project_id] = seq
        return snapshot, seq, list(self._listeners.get(project_id, {}).values())

    def _deliver(
        self,
        project_id: str,
        snapshot: ProjectSnapshot,
        seq: int,
        listeners: List[Listener],
    ) -> None:
        """
        Call listeners in subscription order under the project's delivery lock.

        A listener that publishes again (same thread, reentrant lock) delivers
        the newer snapshot to everyone first; the rest of this older delivery
        is then dropped.
        """
        for listener in listeners:
            with self._lock:
                if self._delivered_seq.get(project_id, 0) > seq:
                    return
            try:
                listener(project_id, snapshot)
            except Exception as e:
                logger.error(f"Listener for project {project_id} failed: {e}", exc_info=True)
        with self._lock:
            if self._delivered_seq.get(project_id, 0) < seq:
                self._delivered_seq[project_id] = seq

    # ------------------------------------------------------------------
    # Loading and refreshing
    # ------------------------------------------------------------------

    def load_from_durable_cache(self, project_id: str, user_id: Optional[str] = None) -> bool:
        """
        Build the snapshot from stored cache entries only (no scanning).

        Returns:
            True if at least one mapping had cached commits
        """
        try:
            records = self.store.find_project_records(project_id, user_id)
        except StoreError as e:
            logger.error(f"Error loading cache for project {project_id}: {e}")
            return False

        views: Dict[str, _MappingView] = {}
        for record in records:
            if record.cache is None or not record.cache.has_commits:
                logger.debug(f"No cached commits for {record.mapping.local_path}")
                continue
            views[record.mapping.id] = _build_view(record.mapping, record.cache, None, "cached")

        if not views:
            return False

        with self._lock:
            live = self._views.get(project_id, {})
            for mapping_id, view in views.items():
                current = live.get(mapping_id)
                if current is not None and current.cache is not None:
                    if _newer_cache(view.cache, current.cache) is current.cache:
                        views[mapping_id] = current
            self._views[project_id] = views
        snapshot = self._publish(project_id, loading=False, error=None)
        logger.info(
            f"Loaded {len(snapshot.branches)} repositories, {len(snapshot.commits)} commits "
            f"from cache for project {project_id}"
        )
        return True

    def refresh_git_data(
        self, project_id: str, user_id: Optional[str] = None, silent: bool = True
    ) -> bool:
        """
        Refresh one project, coalescing with a refresh already in flight.

        Returns once the currently known data is published; rescans of stale
        mappings continue in the background.

        Returns:
            False if another refresh of this project was already running
        """
        with self._lock:
            if project_id in self._in_flight:
                logger.info(f"Already refreshing project {project_id}, skipping")
                return False
            self._in_flight.add(project_id)

        try:
            if not silent:
                self._set_status(project_id, loading=True)

            if not self.scanner.is_available():
                raise GitCapabilityUnavailableError(GIT_UNAVAILABLE)

            records = self.store.find_project_records(project_id, user_id)

            # (mapping, stored cache, probed state); state None keeps the previous view
            probed: List[Tuple[RepositoryMapping, Optional[CacheEntry], Optional[RepositoryState]]] = []
            for record in records:
                mapping = record.mapping
                try:
                    state = self.scanner.probe(mapping.local_path)
                except Exception as e:
                    logger.error(f"Error probing {mapping.local_path}: {e}")
                    probed.append((mapping, None, None))
                    continue

                if state is None:
                    logger.warning(f"{mapping.local_path} is not a Git repository")
                    continue
                probed.append((mapping, record.cache, state))

            views: Dict[str, _MappingView] = {}
            stale: List[RepositoryMapping] = []
            with self._lock:
                # Rescans merged since the records were read carry newer entries
                live = self._views.get(project_id, {})
                for mapping, cache, state in probed:
                    current = live.get(mapping.id)
                    if state is None:
                        if current is not None:
                            views[mapping.id] = current
                        continue
                    cache = _newer_cache(cache, current.cache if current else None)
                    if not self._is_fresh(mapping.id, cache, state):
                        stale.append(mapping)
                    views[mapping.id] = _build_view(mapping, cache, state, "active")
                self._views[project_id] = views
            self._publish(project_id, loading=False, error=None)

            for mapping in stale:
                logger.info(f"{mapping.display_name} cache needs refresh")
                self._queue_rescan(project_id, mapping)

            logger.info(
                f"Refresh complete for project {project_id}: "
                f"{len(views)} repositories, {len(stale)} queued for rescan"
            )
        except Exception as e:
            # Keep whatever was shown before; only a visible refresh owns the loading flag
            logger.error(f"Error refreshing project {project_id}: {e}")
            status = {"error": str(e) or "Refresh failed"}
            if not silent:
                status["loading"] = False
            self._set_status(project_id, **status)
        finally:
            with self._lock:
                self._in_flight.discard(project_id)
        return True

    def is_refreshing(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._in_flight

    def _is_fresh(
        self, mapping_id: str, cache: Optional[CacheEntry], state: RepositoryState
    ) -> bool:
        change_key: ChangeKey = frozenset(
            (path, status) for path, _, status in parse_status_lines(state.status_lines)
        )
        with self._lock:
            previous = self._last_changes.get(mapping_id)
            self._last_changes[mapping_id] = change_key

        if cache is None or cache.last_updated_at is None or not cache.is_valid_repository:
            return False
        if datetime.now(timezone.utc) - cache.last_updated_at >= self.freshness:
            return False
        if cache.current_head != state.head:
            return False
        return previous is None or previous == change_key

    def _queue_rescan(self, project_id: str, mapping: RepositoryMapping) -> bool:
        with self._lock:
            if mapping.id in self._pending_rescans:
                logger.debug(f"Rescan already queued for {mapping.local_path}")
                return False
            self._pending_rescans.add(mapping.id)

        try:
            self._rescan_executor.submit(self._run_rescan, project_id, mapping)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Could not queue rescan for {mapping.local_path}: {e}")
            with self._lock:
                self._pending_rescans.discard(mapping.id)
            return False
        return True

    def _run_rescan(self, project_id: str, mapping: RepositoryMapping) -> None:
        try:
            result = self.coordinator.scan_all([mapping], self.rescan_options)
            report = result.reports[0] if result.reports else None
            if report is None or report.entry is None:
                logger.warning(
                    f"Background rescan of {mapping.local_path} produced no data: "
                    f"{report.error if report else 'no report'}"
                )
                return

            with self._lock:
                views = self._views.get(project_id)
                current = views.get(mapping.id) if views is not None else None
                if current is None:
                    # Mapping left the project snapshot while the scan ran
                    return
                views[mapping.id] = _build_view(
                    current.mapping, report.entry, current.state, "active"
                )
            self._publish(project_id)
            logger.info(f"Merged rescan of {mapping.display_name} into project {project_id}")
        except Exception as e:
            logger.error(f"Background rescan failed for {mapping.local_path}: {e}", exc_info=True)
        finally:
            with self._lock:
                self._pending_rescans.discard(mapping.id)

    # ------------------------------------------------------------------
    # Timers and lifecycle
    # ------------------------------------------------------------------

    def start_auto_refresh(
        self,
        project_id: str,
        user_id: Optional[str] = None,
        interval_ms: Optional[int] = None,
    ) -> bool:
        """Start the project's refresh timer; a no-op when one is already running."""
        interval_ms = interval_ms or self.auto_refresh_interval_ms
        with self._lock:
            if project_id in self._timers:
                logger.info(f"Auto-refresh already running for project {project_id}")
                return False
            timer = PeriodicTimer(
                interval_ms / 1000,
                lambda: self.refresh_git_data(project_id, user_id, True),
                initial_delay=self.initial_refresh_delay_ms / 1000,
                name=f"auto-refresh-{project_id}",
            )
            self._timers[project_id] = timer
            timer.start()
        logger.info(f"Started auto-refresh for project {project_id} ({interval_ms}ms)")
        return True

    def stop_auto_refresh(self, project_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(project_id, None)
        if timer is None:
            return False
        timer.cancel()
        logger.info(f"Auto-refresh stopped for project {project_id}")
        return True

    def is_auto_refresh_running(self, project_id: str) -> bool:
        with self._lock:
            return project_id in self._timers

    def initialize_project(
        self, project_id: str, user_id: Optional[str] = None, auto_refresh: bool = True
    ) -> bool:
        """
        Show cached data immediately, then bring it up to date.

        Returns:
            True if the durable cache had data for the project
        """
        logger.info(f"Initializing project {project_id}")
        has_cache = self.load_from_durable_cache(project_id, user_id)

        if not has_cache:
            logger.info(f"No cache found for project {project_id}, doing initial scan")
            self.refresh_git_data(project_id, user_id, silent=False)
        else:
            self._schedule_refresh(project_id, user_id)

        if auto_refresh:
            self.start_auto_refresh(project_id, user_id)
        return has_cache

    def _schedule_refresh(self, project_id: str, user_id: Optional[str]) -> None:
        """One silent refresh shortly after a cache load."""

        def fire():
            with self._lock:
                self._delayed.pop(project_id, None)
            self.refresh_git_data(project_id, user_id, True)

        timer = threading.Timer(self.initial_refresh_delay_ms / 1000, fire)
        timer.daemon = True
        with self._lock:
            previous = self._delayed.pop(project_id, None)
            self._delayed[project_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def cleanup_project(self, project_id: str) -> None:
        """Detach the project's timers; the cached snapshot is kept."""
        self.stop_auto_refresh(project_id)
        with self._lock:
            delayed = self._delayed.pop(project_id, None)
        if delayed is not None:
            delayed.cancel()
        logger.info(f"Cleaned up project {project_id}")

    def clear_all_cache(self) -> None:
        with self._lock:
            self._snapshots.clear()
            self._views.clear()
            self._last_changes.clear()
        logger.info("Cleared all project caches")

    def shutdown(self) -> None:
        with self._lock:
            project_ids = set(self._timers) | set(self._delayed)
        for project_id in project_ids:
            self.cleanup_project(project_id)
        self._rescan_executor.shutdown(wait=False)
