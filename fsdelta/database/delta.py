"""Statements classifying a scan's staged records against known file state.

Every statement is parameterized by :scan_id, :root, :root_prefix and :now
and they must run in order inside one transaction. Only files under the
scan root are considered for deletion, so scans of disjoint roots sharing
one database do not affect each other.
"""

RECORD_DELETED = """
INSERT INTO file_changes (
    scan_id, file_path, change_type, old_size_bytes, old_mtime, recorded_at
)
SELECT :scan_id, f.file_path, 'deleted', f.file_size_bytes, f.file_mtime, :now
FROM files AS f
WHERE (f.file_path = :root OR substr(f.file_path, 1, length(:root_prefix)) = :root_prefix)
  AND NOT EXISTS (
      SELECT 1 FROM staging_files AS s
      WHERE s.scan_id = :scan_id AND s.file_path = f.file_path
  )
"""

REMOVE_DELETED = """
DELETE FROM files
WHERE file_path IN (
    SELECT file_path FROM file_changes
    WHERE scan_id = :scan_id AND change_type = 'deleted'
)
"""

RECORD_MODIFIED = """
INSERT INTO file_changes (
    scan_id, file_path, change_type,
    old_size_bytes, new_size_bytes, old_mtime, new_mtime, recorded_at
)
SELECT :scan_id, s.file_path, 'modified',
       f.file_size_bytes, s.file_size_bytes, f.file_mtime, s.file_mtime, :now
FROM staging_files AS s
JOIN files AS f ON f.file_path = s.file_path
WHERE s.scan_id = :scan_id
  AND (s.file_size_bytes <> f.file_size_bytes OR s.file_mtime <> f.file_mtime)
"""

RECORD_ADDED = """
INSERT INTO file_changes (
    scan_id, file_path, change_type, new_size_bytes, new_mtime, recorded_at
)
SELECT :scan_id, s.file_path, 'added', s.file_size_bytes, s.file_mtime, :now
FROM staging_files AS s
WHERE s.scan_id = :scan_id
  AND NOT EXISTS (SELECT 1 FROM files AS f WHERE f.file_path = s.file_path)
"""

# Modified files lose their fingerprint so it gets recomputed.
UPSERT_FILES = """
INSERT INTO files (
    file_path, file_name, file_type, file_size_bytes, file_mtime,
    file_fingerprint, last_seen_scan, last_updated
)
SELECT s.file_path, s.file_name, s.file_type, s.file_size_bytes, s.file_mtime,
       NULL, :scan_id, :now
FROM staging_files AS s
WHERE s.scan_id = :scan_id
ON CONFLICT (file_path) DO UPDATE SET
    file_name = excluded.file_name,
    file_type = excluded.file_type,
    file_fingerprint = CASE
        WHEN files.file_size_bytes <> excluded.file_size_bytes
          OR files.file_mtime <> excluded.file_mtime
        THEN NULL
        ELSE files.file_fingerprint
    END,
    file_size_bytes = excluded.file_size_bytes,
    file_mtime = excluded.file_mtime,
    last_seen_scan = excluded.last_seen_scan,
    last_updated = excluded.last_updated
"""

DELTA_STATEMENTS = (
    RECORD_DELETED,
    REMOVE_DELETED,
    RECORD_MODIFIED,
    RECORD_ADDED,
    UPSERT_FILES,
)

CATEGORY_AGGREGATES = """
SELECT change_type,
       COUNT(*) AS file_count,
       COALESCE(SUM(ABS(COALESCE(new_size_bytes, 0) - COALESCE(old_size_bytes, 0))), 0) AS size_bytes
FROM file_changes
WHERE scan_id = ?
GROUP BY change_type
"""
