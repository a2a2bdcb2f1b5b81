from .scan import (
    BatchResult,
    MappingScanReport,
    MappingScanStatus,
    ProjectCacheHealth,
    ProjectScanStats,
    RefreshOptions,
    RefreshStats,
    ScanErrorItem,
    ScanOptions,
)
from .snapshot import (
    ChangeType,
    ProjectSnapshot,
    SnapshotBranch,
    SnapshotCommit,
    SnapshotUser,
    UncommittedChange,
)

__all__ = [
    "BatchResult",
    "ChangeType",
    "MappingScanReport",
    "MappingScanStatus",
    "ProjectCacheHealth",
    "ProjectScanStats",
    "ProjectSnapshot",
    "RefreshOptions",
    "RefreshStats",
    "ScanErrorItem",
    "ScanOptions",
    "SnapshotBranch",
    "SnapshotCommit",
    "SnapshotUser",
    "UncommittedChange",
]
