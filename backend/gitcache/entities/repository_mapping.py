"""
RepositoryMapping entity - one local folder bound to one project and user.

Mappings are created when a user links a folder and removed when it is
unlinked. Re-association is modeled as delete + create.
"""

from datetime import datetime
from pathlib import PurePath
from typing import Optional

from pydantic import BaseModel, Field

from gitcache.entities.base import BaseEntity
from gitcache.entities.git_cache import CacheEntry


class RepositoryMapping(BaseEntity):
    local_path: str
    project_id: str
    user_id: str = ""
    repository_name: Optional[str] = Field(
        None,
        description="Name of the project repository this folder is a checkout of",
    )

    @property
    def display_name(self) -> str:
        """Repository name used to tag commits; falls back to the folder name."""
        return self.repository_name or PurePath(self.local_path).name or self.local_path


class MappingCacheRecord(BaseModel):
    """A mapping row as read back from the durable store."""

    mapping: RepositoryMapping
    cache: Optional[CacheEntry] = None


class StaleEntry(BaseModel):
    """Row returned by the staleness query."""

    id: str
    local_path: str
    project_id: str
    last_updated_at: Optional[datetime] = None

    def to_mapping(self) -> RepositoryMapping:
        return RepositoryMapping(
            id=self.id,
            local_path=self.local_path,
            project_id=self.project_id,
        )
