"""Tests for MetadataStore and the delta computation."""

# pylint: disable=redefined-outer-name

from pathlib import Path

import pytest

from fsdelta.crawler.records import Record
from fsdelta.database import ChangeType, Database, MetadataStore
from fsdelta.errors import DiffComputationError, FinalizeError, LoadError

MTIME_1 = "2024-01-01T00:00:00+00:00"
MTIME_2 = "2024-02-01T00:00:00+00:00"
MB = 1024 * 1024


@pytest.fixture
def store(tmp_path: Path):
    db = Database(tmp_path / "test.db")
    db.connect()
    yield MetadataStore(db)
    db.close()


def _line(scan_id: int, path: str, size: int, mtime: str = MTIME_1) -> str:
    name = path.rsplit("/", 1)[-1]
    return Record(name, name.rsplit(".", 1)[-1], path, size, mtime, scan_id).to_line()


def _scan(store: MetadataStore, root: str, files: dict[str, tuple[int, str]]) -> int:
    scan_id = store.allocate_scan(root, "2024-01-01T00:00:00+00:00")
    store.bulk_append(scan_id, [_line(scan_id, p, s, m) for p, (s, m) in files.items()])
    store.compute_delta(scan_id)
    return scan_id


class TestAllocateScan:
    """Tests for allocate_scan."""

    def test_ids_are_monotonic(self, store: MetadataStore):
        first = store.allocate_scan("/data", "2024-01-01T00:00:00+00:00")
        second = store.allocate_scan("/data", "2024-01-02T00:00:00+00:00")

        assert second > first

    def test_new_scan_is_open(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", "2024-01-01T00:00:00+00:00")

        scan = store.get_scan_run(scan_id)
        assert scan is not None
        assert scan.scan_root == "/data"
        assert scan.finished_at is None
        assert scan.total_paths_count is None
        assert not scan.is_finalized


class TestBulkAppend:
    """Tests for bulk_append and purge_staging."""

    def test_loads_all_lines(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)
        lines = [_line(scan_id, f"/data/f{i}.txt", i) for i in range(10)]

        assert store.bulk_append(scan_id, lines, expected=10) == 10
        assert store.staging_count(scan_id) == 10

    def test_malformed_line_loads_nothing(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)
        lines = [_line(scan_id, "/data/a.txt", 1), "broken line\n", _line(scan_id, "/data/b.txt", 2)]

        with pytest.raises(LoadError):
            store.bulk_append(scan_id, lines)

        assert store.staging_count(scan_id) == 0

    def test_foreign_scan_id_loads_nothing(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)
        other = store.allocate_scan("/other", MTIME_1)

        with pytest.raises(LoadError):
            store.bulk_append(scan_id, [_line(scan_id, "/data/a.txt", 1), _line(other, "/other/b.txt", 1)])

        assert store.staging_count(scan_id) == 0

    def test_unexpected_count_loads_nothing(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)

        with pytest.raises(LoadError):
            store.bulk_append(scan_id, [_line(scan_id, "/data/a.txt", 1)], expected=2)

        assert store.staging_count(scan_id) == 0

    def test_purge_is_scan_scoped(self, store: MetadataStore):
        first = store.allocate_scan("/data", MTIME_1)
        second = store.allocate_scan("/other", MTIME_1)
        store.bulk_append(first, [_line(first, "/data/a.txt", 1)])
        store.bulk_append(second, [_line(second, "/other/a.txt", 1)])

        assert store.purge_staging(first) == 1

        assert store.staging_count(first) == 0
        assert store.staging_count(second) == 1


class TestComputeDelta:
    """Tests for compute_delta and category_aggregates."""

    def test_first_scan_adds_everything(self, store: MetadataStore):
        scan_id = _scan(store, "/data", {"/data/a.txt": (100, MTIME_1), "/data/b.txt": (200, MTIME_1)})

        aggregates = store.category_aggregates(scan_id)

        assert aggregates[ChangeType.ADDED].count == 2
        assert aggregates[ChangeType.ADDED].size_bytes == 300
        assert aggregates[ChangeType.MODIFIED].count == 0
        assert aggregates[ChangeType.DELETED].count == 0

    def test_delete_and_modify(self, store: MetadataStore):
        _scan(store, "/data", {"/data/a.txt": (100, MTIME_1), "/data/b.txt": (200, MTIME_1)})
        scan_id = _scan(store, "/data", {"/data/b.txt": (250, MTIME_2)})

        aggregates = store.category_aggregates(scan_id)

        assert aggregates[ChangeType.ADDED].count == 0
        assert aggregates[ChangeType.MODIFIED].count == 1
        assert aggregates[ChangeType.MODIFIED].size_mb == pytest.approx(50 / MB)
        assert aggregates[ChangeType.DELETED].count == 1
        assert aggregates[ChangeType.DELETED].size_mb == pytest.approx(100 / MB)

        deleted = store.list_changes(scan_id, ChangeType.DELETED)
        assert [(c.file_path, c.old_size_bytes, c.new_size_bytes) for c in deleted] == [
            ("/data/a.txt", 100, None)
        ]

    def test_mtime_only_change_is_modified(self, store: MetadataStore):
        _scan(store, "/data", {"/data/a.txt": (100, MTIME_1)})
        scan_id = _scan(store, "/data", {"/data/a.txt": (100, MTIME_2)})

        aggregates = store.category_aggregates(scan_id)

        assert aggregates[ChangeType.MODIFIED].count == 1
        assert aggregates[ChangeType.MODIFIED].size_bytes == 0

    def test_unchanged_scan_has_no_changes(self, store: MetadataStore):
        files = {"/data/a.txt": (100, MTIME_1)}
        _scan(store, "/data", files)
        scan_id = _scan(store, "/data", files)

        assert store.list_changes(scan_id) == []
        row = store.db.conn.execute(
            "SELECT last_seen_scan FROM files WHERE file_path = ?", ("/data/a.txt",)
        ).fetchone()
        assert row["last_seen_scan"] == scan_id

    def test_modified_file_loses_fingerprint(self, store: MetadataStore):
        _scan(store, "/data", {"/data/a.txt": (100, MTIME_1), "/data/b.txt": (5, MTIME_1)})
        store.db.conn.execute("UPDATE files SET file_fingerprint = 'abc'")
        store.db.conn.commit()

        _scan(store, "/data", {"/data/a.txt": (101, MTIME_1), "/data/b.txt": (5, MTIME_1)})

        rows = store.db.conn.execute(
            "SELECT file_path, file_fingerprint FROM files ORDER BY file_path"
        ).fetchall()
        assert [(r["file_path"], r["file_fingerprint"]) for r in rows] == [
            ("/data/a.txt", None),
            ("/data/b.txt", "abc"),
        ]

    def test_other_roots_are_untouched(self, store: MetadataStore):
        _scan(store, "/data", {"/data/a.txt": (1, MTIME_1)})
        _scan(store, "/data2", {"/data2/a.txt": (1, MTIME_1)})

        scan_id = _scan(store, "/data", {})

        deleted = store.list_changes(scan_id, ChangeType.DELETED)
        assert [c.file_path for c in deleted] == ["/data/a.txt"]
        remaining = store.db.conn.execute("SELECT file_path FROM files").fetchall()
        assert [r["file_path"] for r in remaining] == ["/data2/a.txt"]

    def test_unknown_scan(self, store: MetadataStore):
        with pytest.raises(DiffComputationError):
            store.compute_delta(999)

    def test_aggregates_default_to_zero(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)

        aggregates = store.category_aggregates(scan_id)

        assert set(aggregates) == set(ChangeType)
        assert all(a.count == 0 and a.size_mb == 0.0 for a in aggregates.values())


class TestFinalizeScan:
    """Tests for finalize_scan."""

    def test_finalize_writes_totals(self, store: MetadataStore):
        scan_id = _scan(store, "/data", {"/data/a.txt": (100, MTIME_1)})

        store.finalize_scan(
            scan_id,
            finished_at="2024-01-01T01:00:00+00:00",
            total_paths=1,
            aggregates=store.category_aggregates(scan_id),
            metadata={"hostname": "box"},
        )

        scan = store.get_scan_run(scan_id)
        assert scan is not None
        assert scan.is_finalized
        assert scan.total_paths_count == 1
        assert scan.added_files_count == 1
        assert scan.modified_files_count == 0
        assert scan.removed_files_count == 0
        assert scan.new_data_mb == pytest.approx(100 / MB)
        assert scan.modified_data_mb == 0.0
        assert scan.deleted_data_mb == 0.0
        assert scan.scan_metadata == {"hostname": "box"}

    def test_finalize_only_once(self, store: MetadataStore):
        scan_id = store.allocate_scan("/data", MTIME_1)
        aggregates = store.category_aggregates(scan_id)
        store.finalize_scan(scan_id, "2024-01-01T01:00:00+00:00", 0, aggregates, {})

        with pytest.raises(FinalizeError):
            store.finalize_scan(scan_id, "2024-01-01T02:00:00+00:00", 0, aggregates, {})

        scan = store.get_scan_run(scan_id)
        assert scan is not None
        assert scan.finished_at == "2024-01-01T01:00:00+00:00"

    def test_finalize_unknown_scan(self, store: MetadataStore):
        with pytest.raises(FinalizeError):
            store.finalize_scan(42, "2024-01-01T01:00:00+00:00", 0, {}, {})

    def test_list_scan_runs_newest_first(self, store: MetadataStore):
        first = store.allocate_scan("/data", MTIME_1)
        second = store.allocate_scan("/data", MTIME_1)

        assert [s.scan_id for s in store.list_scan_runs()] == [second, first]
        assert [s.scan_id for s in store.list_scan_runs(limit=1)] == [second]
