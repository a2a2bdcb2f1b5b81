from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from git import Git, Repo
from git.exc import (
    GitCommandError,
    GitCommandNotFound,
    InvalidGitRepositoryError,
    NoSuchPathError,
)

from gitcache.entities import (
    BranchRecord,
    CommitAuthor,
    CommitRecord,
    CommitStats,
    RemoteUrls,
    RepositoryHistory,
    RepositoryState,
    TagRecord,
)

logger = logging.getLogger(__name__)

# Separators that cannot appear in ref names or single-line subjects
RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"

LOG_FORMAT = RECORD_SEP + FIELD_SEP.join(["%H", "%an", "%ae", "%aI", "%P", "%s"])
BRANCH_FORMAT = FIELD_SEP.join(["%(refname)", "%(objectname)", "%(upstream:short)", "%(HEAD)"])
TAG_FORMAT = FIELD_SEP.join(["%(refname:short)", "%(objectname)", "%(creatordate:iso-strict)"])

SHORT_SHA_LENGTH = 8


def _parse_datetime(value: str) -> Optional[datetime]:
    value = value.strip()
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable git date: {value!r}")
        return None


def parse_log_output(output: str, with_stats: bool = False) -> List[CommitRecord]:
    """
    Parse ``git log`` output produced with LOG_FORMAT (optionally with --numstat).

    Each record starts with RECORD_SEP; numstat lines follow the header line
    as ``<added>\\t<deleted>\\t<path>`` (``-`` for binary files).
    """
    commits: List[CommitRecord] = []
    for chunk in output.split(RECORD_SEP)[1:]:
        lines = chunk.split("\n")
        fields = lines[0].split(FIELD_SEP)
        if len(fields) < 6:
            logger.debug(f"Skipping malformed log record: {lines[0]!r}")
            continue

        sha, author_name, author_email, date_raw, parents_raw = fields[:5]
        message = FIELD_SEP.join(fields[5:])
        date = _parse_datetime(date_raw)
        if date is None:
            continue

        stats = CommitStats() if with_stats else None
        for line in lines[1:]:
            parts = line.split("\t")
            if stats is None or len(parts) < 3:
                continue
            stats.additions += int(parts[0]) if parts[0].isdigit() else 0
            stats.deletions += int(parts[1]) if parts[1].isdigit() else 0
            stats.files += 1

        commits.append(
            CommitRecord(
                sha=sha,
                message=message,
                author=CommitAuthor(name=author_name, email=author_email),
                date=date,
                parents=parents_raw.split(),
                stats=stats,
            )
        )
    return commits


def parse_branch_output(output: str) -> List[BranchRecord]:
    branches: List[BranchRecord] = []
    for line in output.splitlines():
        fields = line.split(FIELD_SEP)
        if len(fields) < 4:
            continue
        refname, head, upstream, is_head = fields[:4]
        if refname.startswith("refs/heads/"):
            name, is_remote = refname[len("refs/heads/") :], False
        elif refname.startswith("refs/remotes/"):
            name, is_remote = refname[len("refs/remotes/") :], True
            if name.endswith("/HEAD"):
                continue
        else:
            continue
        branches.append(
            BranchRecord(
                name=name,
                is_local=not is_remote,
                is_remote=is_remote,
                head=head,
                upstream=upstream or None,
                is_current=is_head.strip() == "*",
            )
        )
    return branches


def parse_remote_output(output: str) -> Dict[str, RemoteUrls]:
    remotes: Dict[str, RemoteUrls] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        name, url, kind = parts[0], parts[1], parts[2]
        remote = remotes.setdefault(name, RemoteUrls())
        if kind == "(fetch)":
            remote.fetch = url
        elif kind == "(push)":
            remote.push = url
    return remotes


def parse_tag_output(output: str) -> List[TagRecord]:
    tags: List[TagRecord] = []
    for line in output.splitlines():
        fields = line.split(FIELD_SEP)
        if len(fields) < 2 or not fields[0]:
            continue
        tags.append(
            TagRecord(
                name=fields[0].strip(),
                head=fields[1].strip(),
                date=_parse_datetime(fields[2]) if len(fields) > 2 else None,
            )
        )
    return tags


class GitCli:
    """
    Version-control capability backed by GitPython.

    Provides the lightweight probe (current branch, head, dirty flag,
    ahead/behind) and the full history read used by the scanner.
    Both return None when the path is not a git working copy.
    """

    def __init__(self, timeout: int = 120):
        self.timeout = timeout

    def is_available(self) -> bool:
        try:
            Git().version()
            return True
        except (GitCommandNotFound, GitCommandError, OSError) as e:
            logger.warning(f"git executable not available: {e}")
            return False

    def _open(self, path: str | Path) -> Optional[Repo]:
        try:
            return Repo(str(path))
        except (InvalidGitRepositoryError, NoSuchPathError):
            return None

    def _git(self, repo: Repo, command: str, *args: str) -> str:
        return getattr(repo.git, command)(*args, kill_after_timeout=self.timeout)

    def probe_state(self, path: str | Path) -> Optional[RepositoryState]:
        repo = self._open(path)
        if repo is None:
            return None

        with repo:
            has_commits = repo.head.is_valid()
            if repo.head.is_detached:
                branch = "DETACHED"
            else:
                branch = repo.active_branch.name

            head = repo.head.commit.hexsha[:SHORT_SHA_LENGTH] if has_commits else None

            # --branch keeps a "## ..." header first, so file lines are never
            # subject to output stripping
            status_output = self._git(repo, "status", "--porcelain=v1", "--branch")
            status_lines = [
                line for line in status_output.splitlines() if line and not line.startswith("##")
            ]

            local_branches = [h.name for h in repo.heads]
            remote_branches = [
                refname[len("refs/remotes/") :]
                for refname in self._git(
                    repo, "for_each_ref", "--format=%(refname)", "refs/remotes"
                ).splitlines()
                if refname.startswith("refs/remotes/") and not refname.endswith("/HEAD")
            ]

            ahead = behind = 0
            if has_commits:
                try:
                    counts = self._git(
                        repo, "rev_list", "--left-right", "--count", "HEAD...@{upstream}"
                    ).split()
                    ahead, behind = int(counts[0]), int(counts[1])
                except (GitCommandError, ValueError, IndexError):
                    # No upstream configured
                    pass

            remotes = parse_remote_output(self._git(repo, "remote", "-v"))

        return RepositoryState(
            branch=branch,
            head=head,
            dirty=bool(status_lines),
            ahead=ahead,
            behind=behind,
            local_branches=local_branches,
            remote_branches=remote_branches,
            remote_urls={name: urls.fetch or urls.push or "" for name, urls in remotes.items()},
            status_lines=status_lines,
        )

    def read_history(
        self,
        path: str | Path,
        max_commits: int = 2000,
        include_branches: bool = True,
        include_remotes: bool = True,
        include_stats: bool = True,
    ) -> Optional[RepositoryHistory]:
        repo = self._open(path)
        if repo is None:
            return None

        with repo:
            has_refs = bool(
                self._git(repo, "for_each_ref", "--count=1", "--format=%(refname)").strip()
            )
            commits: List[CommitRecord] = []
            if repo.head.is_valid() or has_refs:
                args = [
                    f"--max-count={max_commits}",
                    "--all",
                    "--date-order",
                    f"--pretty=format:{LOG_FORMAT}",
                ]
                if include_stats:
                    args.append("--numstat")
                commits = parse_log_output(
                    self._git(repo, "log", *args), with_stats=include_stats
                )

            branches: List[BranchRecord] = []
            if include_branches:
                branches = parse_branch_output(
                    self._git(
                        repo,
                        "for_each_ref",
                        f"--format={BRANCH_FORMAT}",
                        "refs/heads",
                        "refs/remotes",
                    )
                )

            remotes: Dict[str, RemoteUrls] = {}
            if include_remotes:
                remotes = parse_remote_output(self._git(repo, "remote", "-v"))

            tags = parse_tag_output(
                self._git(repo, "for_each_ref", f"--format={TAG_FORMAT}", "refs/tags")
            )

        logger.debug(f"Read {len(commits)} commits, {len(branches)} branches from {path}")
        return RepositoryHistory(commits=commits, branches=branches, remotes=remotes, tags=tags)
