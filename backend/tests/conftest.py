"""Shared fixtures: an in-process git capability and the in-memory store."""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from gitcache.config import Settings
from gitcache.container import build_container
from gitcache.entities import (
    BranchRecord,
    CommitAuthor,
    CommitRecord,
    CommitStats,
    RemoteUrls,
    RepositoryHistory,
    RepositoryMapping,
    RepositoryState,
)
from gitcache.repositories import InMemoryGitCacheStore


def make_commits(
    count: int,
    emails: Optional[List[str]] = None,
    now: Optional[datetime] = None,
    prefix: str = "c",
) -> List[CommitRecord]:
    """Commits newest first, one hour apart, authors cycling through ``emails``."""
    now = now or datetime.now(timezone.utc)
    emails = emails or ["dev@example.com"]
    commits = []
    for i in range(count):
        email = emails[i % len(emails)]
        commits.append(
            CommitRecord(
                sha=f"{prefix}{i:039d}",
                message=f"commit {i}",
                author=CommitAuthor(name=email.split("@")[0], email=email),
                date=now - timedelta(hours=i + 1),
                parents=[f"{prefix}{i + 1:039d}"] if i + 1 < count else [],
                stats=CommitStats(additions=10, deletions=2, files=1),
            )
        )
    return commits


class FakeGit:
    """Stands in for GitCli; repositories are registered by path."""

    def __init__(self):
        self.available = True
        self.repos: Dict[str, tuple] = {}
        self.errors: Dict[str, Exception] = {}
        self.history_delay = 0.0
        self.history_gate: Optional[threading.Event] = None
        self.probe_gate: Optional[threading.Event] = None
        self.probe_started = threading.Event()

        self._lock = threading.Lock()
        self.active_reads = 0
        self.max_active_reads = 0
        self.probe_calls: List[str] = []
        self.history_calls: List[str] = []

    def add_repo(
        self,
        path: str,
        commits: int = 0,
        branch: str = "main",
        status_lines: Optional[List[str]] = None,
        emails: Optional[List[str]] = None,
        remotes: bool = True,
    ) -> RepositoryHistory:
        commit_records = make_commits(commits, emails=emails)
        history = RepositoryHistory(
            commits=commit_records,
            branches=[
                BranchRecord(name=branch, is_local=True, is_remote=False, head="0" * 40, is_current=True),
                BranchRecord(name=f"origin/{branch}", is_local=False, is_remote=True, head="0" * 40),
            ],
            remotes={"origin": RemoteUrls(fetch="git@example.com:org/repo.git", push="git@example.com:org/repo.git")}
            if remotes
            else {},
        )
        state = RepositoryState(
            branch=branch,
            head=commit_records[0].sha[:8] if commit_records else None,
            dirty=bool(status_lines),
            local_branches=[branch],
            remote_branches=[f"origin/{branch}"],
            remote_urls={"origin": "git@example.com:org/repo.git"} if remotes else {},
            status_lines=status_lines or [],
        )
        self.repos[path] = (state, history)
        return history

    def set_status(self, path: str, status_lines: List[str]) -> None:
        state, history = self.repos[path]
        self.repos[path] = (
            state.model_copy(update={"status_lines": status_lines, "dirty": bool(status_lines)}),
            history,
        )

    def is_available(self) -> bool:
        return self.available

    def probe_state(self, path):
        path = str(path)
        with self._lock:
            self.probe_calls.append(path)
        self.probe_started.set()
        if self.probe_gate is not None:
            self.probe_gate.wait(5)
        if path in self.errors:
            raise self.errors[path]
        entry = self.repos.get(path)
        return entry[0] if entry else None

    def read_history(self, path, max_commits=2000, **kwargs):
        path = str(path)
        with self._lock:
            self.history_calls.append(path)
            self.active_reads += 1
            self.max_active_reads = max(self.max_active_reads, self.active_reads)
        try:
            if self.history_gate is not None:
                self.history_gate.wait(5)
            if self.history_delay:
                time.sleep(self.history_delay)
            entry = self.repos.get(path)
            if entry is None:
                return None
            history = entry[1]
            return history.model_copy(update={"commits": history.commits[:max_commits]})
        finally:
            with self._lock:
                self.active_reads -= 1


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def store():
    return InMemoryGitCacheStore()


@pytest.fixture
def test_settings():
    return Settings(
        STORE_BACKEND="memory",
        ENABLE_AUTO_REFRESH=False,
        RESCAN_WORKERS=1,
        PROJECT_INITIAL_REFRESH_DELAY_MS=50,
        REFRESH_WARMUP_SECONDS=0.05,
    )


@pytest.fixture
def container(test_settings, store, fake_git):
    container = build_container(test_settings, store=store, git=fake_git)
    yield container
    container.scheduler.cleanup()
    container.manager.shutdown()


def add_mapping(store, mapping_id: str, path: str, project_id: str = "p1", **kwargs) -> RepositoryMapping:
    mapping = RepositoryMapping(id=mapping_id, local_path=path, project_id=project_id, **kwargs)
    store.save_mapping(mapping)
    return mapping


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
