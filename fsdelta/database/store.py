"""Metadata store operations backing the scan lifecycle."""

import json
import logging
import os
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

from fsdelta.crawler.records import Record
from fsdelta.errors import DiffComputationError, FinalizeError, LoadError, ScanAllocationError

from .connection import Database
from .delta import CATEGORY_AGGREGATES, DELTA_STATEMENTS
from .models import CategoryAggregate, ChangeType, FileChange, ScanRun

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def root_prefix(scan_root: str) -> str:
    """Return the prefix every path strictly under scan_root starts with."""
    return scan_root if scan_root.endswith(os.sep) else scan_root + os.sep


class MetadataStore:
    """Reads and writes scan runs, staging rows and change results."""

    def __init__(self, db: Database):
        self.db = db

    def allocate_scan(self, scan_root: str, started_at: str) -> int:
        cursor = self.db.conn.execute(
            "INSERT INTO scan_runs (scan_root, started_at) VALUES (?, ?)",
            (scan_root, started_at),
        )
        self.db.conn.commit()
        if cursor.lastrowid is None:
            raise ScanAllocationError(f"No scan id assigned for {scan_root}")
        return cursor.lastrowid

    def bulk_append(
        self,
        scan_id: int,
        lines: Iterable[str],
        expected: int | None = None,
    ) -> int:
        """Load staging lines for one scan in a single transaction.

        Either every line is stored or none is. Lines that are malformed or
        tagged with a different scan id raise LoadError, as does a row count
        that differs from expected.
        """
        loaded = 0

        def rows() -> Iterator[tuple]:
            nonlocal loaded
            for line_number, line in enumerate(lines, start=1):
                try:
                    record = Record.from_line(line)
                except ValueError as e:
                    raise LoadError(f"Malformed staging line {line_number}: {e}", scan_id) from e
                if record.scan_id != scan_id:
                    raise LoadError(
                        f"Staging line {line_number} belongs to scan {record.scan_id}",
                        scan_id,
                    )
                loaded += 1
                yield (
                    record.scan_id,
                    record.path,
                    record.name,
                    record.extension,
                    record.size_bytes,
                    record.modified_at,
                )

        with self.db.conn:
            self.db.conn.executemany(
                """
                INSERT INTO staging_files (
                    scan_id, file_path, file_name, file_type, file_size_bytes, file_mtime
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows(),
            )
            if expected is not None and loaded != expected:
                raise LoadError(f"Loaded {loaded} staging rows, expected {expected}", scan_id)

        logger.debug("Loaded %d staging rows for scan %d", loaded, scan_id)
        return loaded

    def staging_count(self, scan_id: int) -> int:
        row = self.db.conn.execute(
            "SELECT COUNT(*) FROM staging_files WHERE scan_id = ?", (scan_id,)
        ).fetchone()
        return row[0]

    def purge_staging(self, scan_id: int) -> int:
        with self.db.conn:
            cursor = self.db.conn.execute("DELETE FROM staging_files WHERE scan_id = ?", (scan_id,))
        return cursor.rowcount

    def compute_delta(self, scan_id: int) -> None:
        """Classify the scan's staged records as added, modified or deleted."""
        scan = self.get_scan_run(scan_id)
        if scan is None:
            raise DiffComputationError(f"Unknown scan id: {scan_id}", scan_id)

        params = {
            "scan_id": scan_id,
            "root": scan.scan_root,
            "root_prefix": root_prefix(scan.scan_root),
            "now": utc_now(),
        }
        with self.db.conn:
            for statement in DELTA_STATEMENTS:
                self.db.conn.execute(statement, params)

    def category_aggregates(self, scan_id: int) -> dict[ChangeType, CategoryAggregate]:
        aggregates = {change_type: CategoryAggregate() for change_type in ChangeType}
        for row in self.db.conn.execute(CATEGORY_AGGREGATES, (scan_id,)):
            aggregates[ChangeType(row["change_type"])] = CategoryAggregate(
                count=row["file_count"],
                size_bytes=row["size_bytes"],
            )
        return aggregates

    def finalize_scan(
        self,
        scan_id: int,
        finished_at: str,
        total_paths: int,
        aggregates: dict[ChangeType, CategoryAggregate],
        metadata: dict[str, str],
    ) -> None:
        """Close an open scan run. A scan can only be finalized once."""
        added = aggregates.get(ChangeType.ADDED, CategoryAggregate())
        modified = aggregates.get(ChangeType.MODIFIED, CategoryAggregate())
        deleted = aggregates.get(ChangeType.DELETED, CategoryAggregate())

        with self.db.conn:
            cursor = self.db.conn.execute(
                """
                UPDATE scan_runs
                SET finished_at = ?,
                    total_paths_count = ?,
                    added_files_count = ?,
                    modified_files_count = ?,
                    removed_files_count = ?,
                    new_data_mb = ?,
                    modified_data_mb = ?,
                    deleted_data_mb = ?,
                    scan_metadata = ?
                WHERE scan_id = ? AND finished_at IS NULL
                """,
                (
                    finished_at,
                    total_paths,
                    added.count,
                    modified.count,
                    deleted.count,
                    added.size_mb,
                    modified.size_mb,
                    deleted.size_mb,
                    json.dumps(metadata, sort_keys=True),
                    scan_id,
                ),
            )

        if cursor.rowcount != 1:
            raise FinalizeError(f"Scan {scan_id} does not exist or is already finalized", scan_id)

    def get_scan_run(self, scan_id: int) -> ScanRun | None:
        row = self.db.conn.execute(
            "SELECT * FROM scan_runs WHERE scan_id = ?", (scan_id,)
        ).fetchone()
        return ScanRun.from_row(row) if row else None

    def list_scan_runs(self, limit: int | None = None) -> list[ScanRun]:
        query = "SELECT * FROM scan_runs ORDER BY scan_id DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [ScanRun.from_row(row) for row in self.db.conn.execute(query, params)]

    def list_changes(
        self,
        scan_id: int,
        change_type: ChangeType | None = None,
        limit: int | None = None,
    ) -> list[FileChange]:
        query = "SELECT * FROM file_changes WHERE scan_id = ?"
        params: list = [scan_id]
        if change_type is not None:
            query += " AND change_type = ?"
            params.append(change_type.value)
        query += " ORDER BY change_type, file_path"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        return [FileChange.from_row(row) for row in self.db.conn.execute(query, params)]
