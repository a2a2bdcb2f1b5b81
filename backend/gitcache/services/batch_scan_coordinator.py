"""
Batch scan coordinator - runs the scanner over many mappings.

Mappings are processed in chunks of ``concurrency``; each chunk runs in
parallel and completes before the next one starts. Every mapping's result
is attributed only to that mapping and persisted independently.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from gitcache.dtos import (
    BatchResult,
    MappingScanReport,
    MappingScanStatus,
    ScanErrorItem,
    ScanOptions,
)
from gitcache.entities import CacheEntry, RepositoryMapping
from gitcache.repositories import GitCacheStore
from gitcache.services.exceptions import StoreError
from gitcache.services.repository_scanner import (
    EmptyRepository,
    NotARepository,
    RepositoryScanner,
    ScanFailure,
    ScanSuccess,
)

logger = logging.getLogger(__name__)

NOT_A_REPOSITORY = "Not a Git repository"
NO_COMMIT_HISTORY = "No commit history found"
GIT_UNAVAILABLE = "Git executable not available"


class BatchScanCoordinator:
    def __init__(
        self,
        scanner: RepositoryScanner,
        store: GitCacheStore,
        concurrency: int = 3,
        skip_window_hours: float = 6,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.scanner = scanner
        self.store = store
        self.concurrency = concurrency
        self.skip_window_hours = skip_window_hours

    def scan_all(
        self,
        mappings: List[RepositoryMapping],
        options: Optional[ScanOptions] = None,
    ) -> BatchResult:
        """
        Scan every mapping and aggregate the outcomes.

        Args:
            mappings: Mappings to scan
            options: Scan options; ``force_refresh`` bypasses the skip window

        Returns:
            BatchResult with one report per mapping, in input order
        """
        options = options or ScanOptions()
        result = BatchResult()
        if not mappings:
            return result

        if not self.scanner.is_available():
            logger.error(f"{GIT_UNAVAILABLE}; failing {len(mappings)} mappings")
            for mapping in mappings:
                self._record(
                    result,
                    MappingScanReport(
                        mapping_id=mapping.id,
                        path=mapping.local_path,
                        status=MappingScanStatus.FAILED,
                        error=GIT_UNAVAILABLE,
                    ),
                )
            return result

        logger.info(
            f"Scanning {len(mappings)} repositories "
            f"(concurrency={self.concurrency}, force={options.force_refresh})"
        )
        for start in range(0, len(mappings), self.concurrency):
            chunk = mappings[start : start + self.concurrency]
            for report in self._scan_chunk(chunk, options):
                self._record(result, report)

        logger.info(
            f"Batch scan complete: {result.successful} successful, "
            f"{result.failed} failed, {result.skipped} skipped"
        )
        return result

    def _scan_chunk(
        self, chunk: List[RepositoryMapping], options: ScanOptions
    ) -> List[MappingScanReport]:
        """Run one chunk in parallel; returns reports in chunk order."""
        reports: Dict[int, MappingScanReport] = {}

        with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
            futures = {
                executor.submit(self.scan_mapping, mapping, options): index
                for index, mapping in enumerate(chunk)
            }

            for future in as_completed(futures):
                index = futures[future]
                mapping = chunk[index]
                try:
                    reports[index] = future.result()
                except Exception as e:
                    logger.error(f"Unexpected error scanning {mapping.local_path}: {e}", exc_info=True)
                    reports[index] = MappingScanReport(
                        mapping_id=mapping.id,
                        path=mapping.local_path,
                        status=MappingScanStatus.FAILED,
                        error=str(e) or type(e).__name__,
                    )

        return [reports[index] for index in range(len(chunk))]

    def scan_mapping(
        self, mapping: RepositoryMapping, options: ScanOptions
    ) -> MappingScanReport:
        """Scan and persist a single mapping."""
        path = mapping.local_path

        if not options.force_refresh and self._recently_scanned(mapping):
            logger.debug(f"Skipping {path}: scanned within the last {self.skip_window_hours}h")
            return MappingScanReport(
                mapping_id=mapping.id, path=path, status=MappingScanStatus.SKIPPED
            )

        started_at = datetime.now(timezone.utc)
        outcome = self.scanner.scan(path, options)

        if isinstance(outcome, NotARepository):
            self._persist(
                mapping,
                {"is_valid_repository": False, "scan_error": NOT_A_REPOSITORY},
                started_at,
            )
            return MappingScanReport(
                mapping_id=mapping.id,
                path=path,
                status=MappingScanStatus.FAILED,
                error=NOT_A_REPOSITORY,
            )

        if isinstance(outcome, EmptyRepository):
            entry = CacheEntry(
                current_branch=outcome.state.branch,
                current_head=outcome.state.head,
                is_valid_repository=True,
                scan_error=NO_COMMIT_HISTORY,
                last_updated_at=started_at,
            )
            self._persist(
                mapping,
                entry.model_dump(
                    include={"current_branch", "current_head", "is_valid_repository", "scan_error"}
                ),
                started_at,
            )
            return MappingScanReport(
                mapping_id=mapping.id,
                path=path,
                status=MappingScanStatus.FAILED,
                error=NO_COMMIT_HISTORY,
                entry=entry,
            )

        if isinstance(outcome, ScanFailure):
            # Keep commit data from any earlier successful scan
            self._persist(mapping, {"scan_error": outcome.message}, started_at)
            return MappingScanReport(
                mapping_id=mapping.id,
                path=path,
                status=MappingScanStatus.FAILED,
                error=outcome.message,
            )

        if isinstance(outcome, ScanSuccess):
            entry = CacheEntry(
                commits=outcome.history.commits,
                branches=outcome.history.branches,
                remotes=outcome.history.remotes,
                tags=outcome.history.tags,
                contributors=outcome.contributors,
                summary=outcome.summary,
                current_branch=outcome.state.branch,
                current_head=outcome.state.head,
                last_updated_at=outcome.scanned_at,
                is_valid_repository=True,
                scan_error=None,
            )
            self._persist(
                mapping, entry.model_dump(exclude={"last_updated_at"}), outcome.scanned_at
            )
            return MappingScanReport(
                mapping_id=mapping.id,
                path=path,
                status=MappingScanStatus.SUCCESSFUL,
                commit_count=len(entry.commits),
                branch_count=len(entry.branches),
                contributor_count=len(entry.contributors),
                entry=entry,
            )

        raise TypeError(f"Unhandled scan outcome: {outcome!r}")

    def _recently_scanned(self, mapping: RepositoryMapping) -> bool:
        try:
            entry = self.store.get(mapping.id)
        except StoreError as e:
            logger.warning(f"Could not read cache for {mapping.local_path}, scanning anyway: {e}")
            return False

        if entry is None or entry.last_updated_at is None:
            return False
        age = datetime.now(timezone.utc) - entry.last_updated_at
        return age < timedelta(hours=self.skip_window_hours)

    def _persist(self, mapping: RepositoryMapping, fields: Dict[str, Any], as_of: datetime) -> None:
        try:
            written = self.store.upsert(mapping.id, fields, as_of)
        except StoreError as e:
            # last_updated_at did not advance, so the staleness pass will retry this mapping
            logger.error(f"Failed to persist cache for {mapping.local_path}: {e}")
            return
        if not written:
            logger.info(
                f"Discarded result for {mapping.local_path} as of {as_of}: "
                f"mapping removed or newer cache stored"
            )

    @staticmethod
    def _record(result: BatchResult, report: MappingScanReport) -> None:
        result.reports.append(report)
        if report.status == MappingScanStatus.SKIPPED:
            result.skipped += 1
        elif report.status == MappingScanStatus.SUCCESSFUL:
            result.successful += 1
            result.total_commits += report.commit_count
            result.total_branches += report.branch_count
            result.total_contributors += report.contributor_count
        else:
            result.failed += 1
            result.errors.append(ScanErrorItem(path=report.path, error=report.error or "Unknown error"))
