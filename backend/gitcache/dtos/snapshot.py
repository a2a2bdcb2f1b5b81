"""Project snapshot DTOs - the in-memory read model served to the UI."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from gitcache.entities import CommitRecord


class ChangeType(str, Enum):
    MODIFIED = "MODIFIED"
    ADDED = "ADDED"
    DELETED = "DELETED"
    RENAMED = "RENAMED"
    UNTRACKED = "UNTRACKED"


class SnapshotBranch(BaseModel):
    name: str  # Repository name
    path: str
    branch: str
    head: Optional[str] = None
    dirty: bool = False
    ahead: int = 0
    behind: int = 0
    local_branches: List[str] = Field(default_factory=list)
    remote_branches: List[str] = Field(default_factory=list)
    remote_urls: Dict[str, str] = Field(default_factory=dict)
    last_checked: Optional[datetime] = None
    from_cache: bool = False


class SnapshotCommit(CommitRecord):
    """A commit tagged with the repository and checkout it came from."""

    repository: str
    local_path: str


class SnapshotUser(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    local_path: str
    current_branch: str
    status: str
    commits_today: int = 0


class UncommittedChange(BaseModel):
    id: str
    file_path: str
    change_type: ChangeType
    status: str
    repository: str
    local_path: str


class ProjectSnapshot(BaseModel):
    branches: List[SnapshotBranch] = Field(default_factory=list)
    commits: List[SnapshotCommit] = Field(default_factory=list)
    users: List[SnapshotUser] = Field(default_factory=list)
    uncommitted_changes: List[UncommittedChange] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    loading: bool = False
    error: Optional[str] = None
