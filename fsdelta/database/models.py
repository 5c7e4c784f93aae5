"""Data models for the database."""

import json
import sqlite3
from dataclasses import dataclass, field
from enum import Enum


class ScanState(Enum):
    """Lifecycle state of a scan."""

    CREATED = "created"
    CRAWLING = "crawling"
    LOADING = "loading"
    DIFFING = "diffing"
    FINALIZED = "finalized"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.FINALIZED, ScanState.FAILED)


class ChangeType(Enum):
    """Classification of a path between two scans."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


BYTES_PER_MB = 1024 * 1024


@dataclass
class CategoryAggregate:
    """Count and absolute size delta for one change type."""

    count: int = 0
    size_bytes: int = 0

    @property
    def size_mb(self) -> float:
        return self.size_bytes / BYTES_PER_MB


@dataclass
class ScanRun:
    """Represents a scan_runs record."""

    scan_id: int
    scan_root: str
    started_at: str
    finished_at: str | None = None
    total_paths_count: int | None = None
    added_files_count: int | None = None
    modified_files_count: int | None = None
    removed_files_count: int | None = None
    new_data_mb: float | None = None
    modified_data_mb: float | None = None
    deleted_data_mb: float | None = None
    scan_metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_finalized(self) -> bool:
        return self.finished_at is not None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ScanRun":
        metadata = row["scan_metadata"]
        return cls(
            scan_id=row["scan_id"],
            scan_root=row["scan_root"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            total_paths_count=row["total_paths_count"],
            added_files_count=row["added_files_count"],
            modified_files_count=row["modified_files_count"],
            removed_files_count=row["removed_files_count"],
            new_data_mb=row["new_data_mb"],
            modified_data_mb=row["modified_data_mb"],
            deleted_data_mb=row["deleted_data_mb"],
            scan_metadata=json.loads(metadata) if metadata else {},
        )


@dataclass
class FileChange:
    """Represents a file_changes record."""

    scan_id: int
    file_path: str
    change_type: ChangeType
    old_size_bytes: int | None
    new_size_bytes: int | None
    old_mtime: str | None
    new_mtime: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "FileChange":
        return cls(
            scan_id=row["scan_id"],
            file_path=row["file_path"],
            change_type=ChangeType(row["change_type"]),
            old_size_bytes=row["old_size_bytes"],
            new_size_bytes=row["new_size_bytes"],
            old_mtime=row["old_mtime"],
            new_mtime=row["new_mtime"],
        )
