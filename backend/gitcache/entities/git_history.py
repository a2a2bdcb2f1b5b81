"""
Git history entities - normalized output of the version-control capability.

These are produced only by the git capability and the repository scanner.
Commits are immutable once read; history is append-only from our point of view.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CommitAuthor(BaseModel):
    name: str
    email: str


class CommitStats(BaseModel):
    additions: int = 0
    deletions: int = 0
    files: int = 0


class CommitRecord(BaseModel):
    sha: str
    message: str
    author: CommitAuthor
    date: datetime
    parents: List[str] = Field(default_factory=list)
    stats: Optional[CommitStats] = None


class BranchRecord(BaseModel):
    name: str
    is_local: bool
    is_remote: bool
    head: str
    upstream: Optional[str] = None
    is_current: bool = False


class TagRecord(BaseModel):
    name: str
    head: str
    date: Optional[datetime] = None


class RemoteUrls(BaseModel):
    fetch: Optional[str] = None
    push: Optional[str] = None


class RepositoryState(BaseModel):
    """Lightweight probe of a working copy (no history walk)."""

    branch: str
    head: Optional[str] = None  # Short sha, None before the first commit
    dirty: bool = False
    ahead: int = 0
    behind: int = 0
    local_branches: List[str] = Field(default_factory=list)
    remote_branches: List[str] = Field(default_factory=list)
    remote_urls: Dict[str, str] = Field(default_factory=dict)
    status_lines: List[str] = Field(default_factory=list)  # `git status --porcelain`


class RepositoryHistory(BaseModel):
    commits: List[CommitRecord] = Field(default_factory=list)
    branches: List[BranchRecord] = Field(default_factory=list)
    remotes: Dict[str, RemoteUrls] = Field(default_factory=dict)
    tags: List[TagRecord] = Field(default_factory=list)
