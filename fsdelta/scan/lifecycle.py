"""Scan lifecycle: crawl, bulk load, delta computation and finalize."""

import logging
import os
import socket
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from fsdelta.config import Config
from fsdelta.crawler.coordinator import CrawlCoordinator
from fsdelta.crawler.progress import Report
from fsdelta.database import CategoryAggregate, ChangeType, Database, MetadataStore, ScanRun, ScanState
from fsdelta.database.store import utc_now
from fsdelta.errors import (
    CleanupError,
    DiffComputationError,
    FinalizeError,
    FsDeltaError,
    LoadError,
    PhaseError,
    RootNotFoundError,
    ScanAllocationError,
    TraversalError,
)

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ScanState | None, set[ScanState]] = {
    # A scan crawled by another process resumes at loading.
    None: {ScanState.CREATED, ScanState.LOADING, ScanState.FAILED},
    ScanState.CREATED: {ScanState.CRAWLING, ScanState.FAILED},
    ScanState.CRAWLING: {ScanState.LOADING, ScanState.FAILED},
    ScanState.LOADING: {ScanState.DIFFING, ScanState.FAILED},
    ScanState.DIFFING: {ScanState.FINALIZED, ScanState.FAILED},
    ScanState.FINALIZED: set(),
    ScanState.FAILED: set(),
}


def get_hostname() -> str:
    name = os.environ.get("HOSTNAME")
    if not name:
        try:
            name = socket.gethostname()
        except OSError:
            name = ""
    return name or "unknown"


class ScanOrchestrator:
    """Runs a single scan of one root through its lifecycle.

    States advance created -> crawling -> loading -> diffing -> finalized.
    run() does all of it; start() and finish() split the lifecycle around a
    crawl done elsewhere. Any failure moves the scan to failed and re-raises;
    the scan run row is left open with no finished_at, so the incomplete scan
    stays visible. Staging rows of a scan that fails after loading are
    purged, and its artifact is kept. An orchestrator instance runs exactly
    one scan.
    """

    def __init__(
        self,
        db: Database,
        config: Config,
        report: Report | None = None,
        hostname: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = MetadataStore(db)
        self.config = config
        self.coordinator = CrawlCoordinator(config.crawler, report=report, clock=clock)
        self.hostname = hostname or get_hostname()
        self.clock = clock
        self.state: ScanState | None = None
        self.scan_id: int | None = None
        self.root: Path | None = None
        self.artifact: Path | None = None
        self.keep_artifact = False

    def start(self, root: Path) -> int:
        """Allocate an open scan run for root and return its scan id."""
        self._ensure_unused()

        root = root.resolve()
        if not root.is_dir():
            error = RootNotFoundError(root)
            self._fail("starting", error)
            raise error

        with self._step("allocating", ScanAllocationError):
            self.scan_id = self.store.allocate_scan(str(root), utc_now())
        self._transition(ScanState.CREATED)
        self.root = root
        self.artifact = self.config.staging_artifact(self.scan_id)
        logger.info("Scan %d started for %s", self.scan_id, root)
        return self.scan_id

    def run(self, root: Path) -> ScanRun:
        self.start(root)

        self._transition(ScanState.CRAWLING)
        with self._step("crawling", TraversalError):
            crawl_result = self.coordinator.crawl(self.root, self.scan_id, self.artifact)

        return self._complete(crawl_result.total_files, crawl_result.to_metadata())

    def finish(self, scan_id: int, artifact: Path, keep_artifact: bool = False) -> ScanRun:
        """Load, diff and finalize an open scan from a staging artifact.

        The artifact was written by a separate crawl of the scan's root. It
        is removed after a successful finalize unless keep_artifact is set.
        """
        self._ensure_unused()
        self.scan_id = scan_id
        self.artifact = artifact
        self.keep_artifact = keep_artifact

        scan = self.store.get_scan_run(scan_id)
        if scan is None or scan.is_finalized:
            error = LoadError(f"Scan {scan_id} does not exist or is already finalized", scan_id)
            self._fail("loading", error)
            raise error
        self.root = Path(scan.scan_root)

        return self._complete(None, {"data_root": scan.scan_root})

    def _complete(self, expected: int | None, metadata: dict[str, str]) -> ScanRun:
        self._transition(ScanState.LOADING)
        with self._step("loading", LoadError):
            loaded = self._load(self.artifact, expected)
        logger.info("Scan %d: loaded %d records into staging", self.scan_id, loaded)

        try:
            self._transition(ScanState.DIFFING)
            with self._step("diffing", DiffComputationError):
                diff_start = self.clock()
                self.store.compute_delta(self.scan_id)
                metadata["sql_execution_time_s"] = str(self.clock() - diff_start)

            with self._step("finalizing", FinalizeError):
                self._finalize(loaded, metadata)
        except PhaseError:
            self._release(self._purge_staging)
            raise
        self._transition(ScanState.FINALIZED)

        self._release(self._purge_staging)
        if not self.keep_artifact:
            self._release(self._remove_artifact)

        scan = self.store.get_scan_run(self.scan_id)
        assert scan is not None
        return scan

    def _ensure_unused(self) -> None:
        if self.state is not None:
            raise RuntimeError("ScanOrchestrator instances run a single scan")

    def _load(self, artifact: Path, expected: int | None) -> int:
        with open(artifact, encoding="utf-8", newline="\n") as lines:
            return self.store.bulk_append(self.scan_id, lines, expected=expected)

    def _finalize(self, total_paths: int, metadata: dict[str, str]) -> None:
        aggregates = self.store.category_aggregates(self.scan_id)
        added = aggregates.get(ChangeType.ADDED, CategoryAggregate())
        modified = aggregates.get(ChangeType.MODIFIED, CategoryAggregate())
        deleted = aggregates.get(ChangeType.DELETED, CategoryAggregate())
        finished_at = utc_now()

        metadata.update(
            {
                "hostname": self.hostname,
                "scan_id": str(self.scan_id),
                "completed_at": finished_at,
                "added_files_count": str(added.count),
                "modified_files_count": str(modified.count),
                "removed_files_count": str(deleted.count),
                "new_data_mb": str(added.size_mb),
                "modified_data_mb": str(modified.size_mb),
                "deleted_data_mb": str(deleted.size_mb),
            }
        )

        self.store.finalize_scan(
            self.scan_id,
            finished_at=finished_at,
            total_paths=total_paths,
            aggregates=aggregates,
            metadata=metadata,
        )
        logger.info(
            "Scan %d finalized: %d paths, %d added, %d modified, %d deleted",
            self.scan_id,
            total_paths,
            added.count,
            modified.count,
            deleted.count,
        )

    def _release(self, release: Callable[[], None]) -> None:
        try:
            release()
        except CleanupError as e:
            logger.warning("Scan %d: cleanup incomplete: %s", self.scan_id, e)

    def _purge_staging(self) -> None:
        try:
            purged = self.store.purge_staging(self.scan_id)
        except sqlite3.Error as e:
            raise CleanupError(f"Failed to purge staging rows: {e}") from e
        logger.debug("Scan %d: purged %d staging rows", self.scan_id, purged)

    def _remove_artifact(self) -> None:
        try:
            os.remove(self.artifact)
        except FileNotFoundError:
            return
        except OSError as e:
            raise CleanupError(f"Failed to remove staging artifact {self.artifact}: {e}") from e
        logger.debug("Scan %d: removed staging artifact %s", self.scan_id, self.artifact)

    def _transition(self, state: ScanState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid scan state transition: {self.state} -> {state}")
        logger.info(
            "Scan %s: %s -> %s",
            self.scan_id,
            self.state.value if self.state else "new",
            state.value,
        )
        self.state = state

    @contextmanager
    def _step(self, phase: str, error_cls: type[PhaseError]) -> Iterator[None]:
        try:
            yield
        except PhaseError as e:
            if e.scan_id is None:
                e.scan_id = self.scan_id
            self._fail(phase, e)
            raise
        except FsDeltaError as e:
            self._fail(phase, e)
            raise
        except (OSError, sqlite3.Error, UnicodeError) as e:
            error = error_cls(f"Scan {self.scan_id} failed while {phase}: {e}", self.scan_id)
            self._fail(phase, error)
            raise error from e

    def _fail(self, phase: str, error: Exception) -> None:
        if self.state is None or not self.state.is_terminal:
            self._transition(ScanState.FAILED)
        logger.error("Scan %s failed while %s: %s", self.scan_id, phase, error)
        if self.artifact is not None and self.artifact.exists():
            logger.error("Staging artifact kept for inspection: %s", self.artifact)
