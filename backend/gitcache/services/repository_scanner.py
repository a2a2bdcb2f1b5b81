"""
Repository scanner - reads one working copy into a structured history.

The scanner owns no state. Every call returns one member of ``ScanOutcome``;
failures of the git capability are reported as ``ScanFailure`` and never
raised to the caller, so a batch can keep going past a broken repository.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple, Union

from gitcache.dtos import ChangeType, ScanOptions
from gitcache.entities import (
    CacheSummary,
    CodeMetrics,
    CommitRecord,
    ContributorSummary,
    RecentActivity,
    RepositoryHealth,
    RepositoryHistory,
    RepositoryState,
)
from gitcache.utils.git import GitCli

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_DAYS = 30

# Porcelain v1: two status columns, a space, then the path ("old -> new" for renames)
_STATUS_LINE = re.compile(r"^([ A-Z?!]{2}) (.+)$")


@dataclass(frozen=True)
class NotARepository:
    """The path is missing or carries no git metadata."""


@dataclass(frozen=True)
class EmptyRepository:
    """A valid repository without a single commit."""

    state: RepositoryState


@dataclass(frozen=True)
class ScanSuccess:
    history: RepositoryHistory
    state: RepositoryState
    contributors: List[ContributorSummary]
    summary: CacheSummary
    scanned_at: datetime


@dataclass(frozen=True)
class ScanFailure:
    """Probe or history read raised; ``message`` is what gets persisted."""

    message: str
    error_type: str = field(default="ScanError")


ScanOutcome = Union[NotARepository, EmptyRepository, ScanSuccess, ScanFailure]


def build_contributors(commits: List[CommitRecord]) -> List[ContributorSummary]:
    """
    Group commits by author email, most active contributor first.

    Commits are expected newest first, so the first commit seen for an
    author provides both the display name and the last commit date.
    """
    by_email: Dict[str, ContributorSummary] = {}
    for commit in commits:
        email = commit.author.email
        if not email:
            continue
        contributor = by_email.get(email)
        if contributor is None:
            contributor = ContributorSummary(
                email=email,
                name=commit.author.name or email,
                commit_count=0,
                last_commit_date=commit.date,
            )
            by_email[email] = contributor
        contributor.commit_count += 1
        if commit.stats:
            contributor.total_additions += commit.stats.additions
            contributor.total_deletions += commit.stats.deletions

    # sorted() is stable: ties keep first-seen (most recent) order
    return sorted(by_email.values(), key=lambda c: c.commit_count, reverse=True)


def build_summary(
    history: RepositoryHistory,
    state: RepositoryState,
    contributors: List[ContributorSummary],
    now: Optional[datetime] = None,
) -> CacheSummary:
    now = now or datetime.now(timezone.utc)
    commits = history.commits
    recent_cutoff = now - timedelta(days=RECENT_ACTIVITY_DAYS)
    recent = [c for c in commits if c.date > recent_cutoff]

    additions = sum(c.stats.additions for c in commits if c.stats)
    deletions = sum(c.stats.deletions for c in commits if c.stats)
    files = sum(c.stats.files for c in commits if c.stats)

    last_commit_date = commits[0].date if commits else None
    return CacheSummary(
        total_commits=len(commits),
        total_branches=len(history.branches),
        total_contributors=len(contributors),
        total_remotes=len(history.remotes),
        total_tags=len(history.tags),
        first_commit_date=commits[-1].date if commits else None,
        last_commit_date=last_commit_date,
        recent_activity=RecentActivity(
            commits_last_30_days=len(recent),
            last_commit_date=last_commit_date,
            active_branch=state.branch,
            is_active=bool(recent),
        ),
        code_metrics=CodeMetrics(
            total_additions=additions,
            total_deletions=deletions,
            total_files=files,
            net_lines=additions - deletions,
            average_commit_size=round((additions + deletions) / len(commits)) if commits else 0,
        ),
        repository_health=RepositoryHealth(
            has_remotes=bool(history.remotes),
            has_multiple_branches=len(history.branches) > 1,
            has_recent_activity=bool(recent),
            is_up_to_date=state.ahead == 0 and state.behind == 0,
        ),
    )


def classify_status(status: str) -> ChangeType:
    if "A" in status:
        return ChangeType.ADDED
    if "D" in status:
        return ChangeType.DELETED
    if "R" in status:
        return ChangeType.RENAMED
    if "?" in status:
        return ChangeType.UNTRACKED
    return ChangeType.MODIFIED


def parse_status_lines(lines: List[str]) -> List[Tuple[str, ChangeType, str]]:
    """Turn porcelain status lines into ``(file_path, change_type, status)`` tuples."""
    changes = []
    for line in lines:
        match = _STATUS_LINE.match(line)
        if not match:
            continue
        status = match.group(1).strip()
        changes.append((match.group(2), classify_status(status), status))
    return changes


class RepositoryScanner:
    """Scans single repositories through the git capability."""

    def __init__(self, git: Optional[GitCli] = None):
        self.git = git or GitCli()

    def is_available(self) -> bool:
        return self.git.is_available()

    def probe(self, path: str) -> Optional[RepositoryState]:
        """Lightweight current state; None when the path is not a repository."""
        return self.git.probe_state(path)

    def scan(self, path: str, options: Optional[ScanOptions] = None) -> ScanOutcome:
        options = options or ScanOptions()
        scanned_at = datetime.now(timezone.utc)

        try:
            state = self.git.probe_state(path)
            if state is None:
                logger.warning(f"{path} is not a Git repository")
                return NotARepository()

            history = self.git.read_history(
                path,
                max_commits=options.max_commits,
                include_branches=options.include_branches,
                include_remotes=options.include_remotes,
                include_stats=options.include_stats,
            )
            if history is None:
                # Metadata disappeared between probe and history read
                return NotARepository()
        except Exception as e:
            logger.error(f"Error scanning {path}: {e}")
            return ScanFailure(message=str(e) or type(e).__name__, error_type=type(e).__name__)

        if not history.commits:
            logger.warning(f"{path} has no commit history")
            return EmptyRepository(state=state)

        if len(history.commits) > options.max_commits:
            history = history.model_copy(update={"commits": history.commits[: options.max_commits]})

        contributors = build_contributors(history.commits)
        summary = build_summary(history, state, contributors, now=scanned_at)
        logger.info(
            f"Scanned {len(history.commits)} commits, {len(history.branches)} branches "
            f"from {path}"
        )
        return ScanSuccess(
            history=history,
            state=state,
            contributors=contributors,
            summary=summary,
            scanned_at=scanned_at,
        )
