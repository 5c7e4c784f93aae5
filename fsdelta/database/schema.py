"""Database schema definition."""

import sqlite3

SCHEMA_SQL = """
-- One row per crawl attempt
CREATE TABLE IF NOT EXISTS scan_runs (
    scan_id INTEGER PRIMARY KEY AUTOINCREMENT,
    scan_root TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    total_paths_count INTEGER,
    added_files_count INTEGER,
    modified_files_count INTEGER,
    removed_files_count INTEGER,
    new_data_mb REAL,
    modified_data_mb REAL,
    deleted_data_mb REAL,
    scan_metadata TEXT
);

-- Last known state of every tracked path
CREATE TABLE IF NOT EXISTS files (
    file_path TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    file_mtime TEXT NOT NULL,
    file_fingerprint TEXT,
    last_seen_scan INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON UPDATE CASCADE,
    last_updated TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_last_seen_scan ON files(last_seen_scan);

-- Per-scan change classification
CREATE TABLE IF NOT EXISTS file_changes (
    scan_id INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    change_type TEXT NOT NULL CHECK (change_type IN ('added', 'modified', 'deleted')),
    old_size_bytes INTEGER,
    new_size_bytes INTEGER,
    old_mtime TEXT,
    new_mtime TEXT,
    recorded_at TEXT NOT NULL,
    PRIMARY KEY (scan_id, file_path)
);

CREATE INDEX IF NOT EXISTS idx_file_changes_type ON file_changes(scan_id, change_type);

-- Raw records of in-flight scans
CREATE TABLE IF NOT EXISTS staging_files (
    scan_id INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    file_mtime TEXT NOT NULL,
    PRIMARY KEY (scan_id, file_path)
);
"""

TABLES = ("staging_files", "file_changes", "files", "scan_runs")


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    conn.commit()


def reset_schema(conn: sqlite3.Connection) -> None:
    """Drop every table and recreate an empty schema."""
    for table in TABLES:
        conn.execute(f"DROP TABLE IF EXISTS {table}")
    conn.commit()
    create_schema(conn)
