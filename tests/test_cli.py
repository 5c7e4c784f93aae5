"""Tests for the fsdelta command line interface."""

# pylint: disable=redefined-outer-name

from pathlib import Path

import pytest
from click.testing import CliRunner

from fsdelta import cli as cli_module
from fsdelta.cli import cli


@pytest.fixture
def runner(tmp_path: Path, monkeypatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    for name in ("DATA_ROOT", "DATABASE_PATH", "LOG_FILE", "PROGRESS_INTERVAL", "CRAWL_WORKERS", "STAGING_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli_module, "configure_logging", lambda *args, **kwargs: None)
    return CliRunner()


def _scan_args(tmp_path: Path, root: Path) -> list[str]:
    return [
        "scan",
        str(root),
        "--database",
        str(tmp_path / "fsdelta.db"),
        "--staging-dir",
        str(tmp_path / "staging"),
        "--log-file",
        str(tmp_path / "logs" / "app.log"),
        "--workers",
        "2",
    ]


class TestInitDb:
    """Tests for the init-db command."""

    def test_creates_database(self, runner: CliRunner, tmp_path: Path):
        db_path = tmp_path / "db" / "fsdelta.db"

        result = runner.invoke(cli, ["init-db", "--database", str(db_path)])

        assert result.exit_code == 0
        assert f"Database initialized: {db_path}" in result.output
        assert db_path.exists()

    def test_reset_asks_for_confirmation(self, runner: CliRunner, tmp_path: Path):
        db_path = tmp_path / "fsdelta.db"
        runner.invoke(cli, ["init-db", "--database", str(db_path)])

        result = runner.invoke(cli, ["init-db", "--reset", "--database", str(db_path)], input="n\n")

        assert result.exit_code == 1
        assert "Aborted" in result.output

    def test_reset_confirmed(self, runner: CliRunner, tmp_path: Path):
        db_path = tmp_path / "fsdelta.db"

        result = runner.invoke(cli, ["init-db", "--reset", "--database", str(db_path)], input="y\n")

        assert result.exit_code == 0
        assert "Database initialized" in result.output


class TestScanCommand:
    """Tests for scan, status and changes together."""

    def test_scan_then_report(self, runner: CliRunner, tmp_path: Path):
        root = tmp_path / "data"
        root.mkdir()
        (root / "a.txt").write_bytes(b"x" * 100)
        (root / "b.txt").write_bytes(b"x" * 200)
        db_path = str(tmp_path / "fsdelta.db")

        result = runner.invoke(cli, _scan_args(tmp_path, root))

        assert result.exit_code == 0, result.output
        assert "Scan 1 complete" in result.output
        assert "Total files: 2" in result.output
        assert "Added: 2" in result.output
        assert "Deleted: 0" in result.output

        status = runner.invoke(cli, ["status", "--database", db_path])

        assert status.exit_code == 0
        assert "finalized" in status.output

        changes = runner.invoke(cli, ["changes", "1", "--database", db_path])

        assert changes.exit_code == 0
        assert changes.output.count("added") == 2
        assert "a.txt" in changes.output

        deleted = runner.invoke(cli, ["changes", "1", "--type", "deleted", "--database", db_path])

        assert deleted.exit_code == 0
        assert "No changes recorded for scan 1." in deleted.output

    def test_missing_root_fails(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(cli, _scan_args(tmp_path, tmp_path / "missing"))

        assert result.exit_code == 1
        assert "Error:" in result.output

        status = runner.invoke(cli, ["status", "--database", str(tmp_path / "fsdelta.db")])
        assert "No scans found." in status.output


class TestStatusCommand:
    """Tests for status and changes without scans."""

    def test_no_database(self, runner: CliRunner, tmp_path: Path):
        result = runner.invoke(cli, ["status", "--database", str(tmp_path / "none.db")])

        assert result.exit_code == 0
        assert "No database found" in result.output

    def test_changes_unknown_scan(self, runner: CliRunner, tmp_path: Path):
        db_path = tmp_path / "fsdelta.db"
        runner.invoke(cli, ["init-db", "--database", str(db_path)])

        result = runner.invoke(cli, ["changes", "7", "--database", str(db_path)])

        assert result.exit_code == 1
        assert "No scan with id 7" in result.output


class TestSplitPhaseCommands:
    """Tests for start-scan, crawl and finish-scan run one after another."""

    def test_phases_run_separately(self, runner: CliRunner, tmp_path: Path):
        root = tmp_path / "data"
        root.mkdir()
        (root / "a.txt").write_bytes(b"x" * 100)
        (root / "b.txt").write_bytes(b"x" * 200)
        db_path = str(tmp_path / "fsdelta.db")
        staging = tmp_path / "staging" / "scan.tsv"

        started = runner.invoke(cli, ["start-scan", str(root), "--database", db_path])

        assert started.exit_code == 0, started.output
        scan_id = started.output.strip()
        assert scan_id == "1"

        crawled = runner.invoke(
            cli, ["crawl", str(root), "--scan-id", scan_id, "--output", str(staging), "--workers", "2"]
        )

        assert crawled.exit_code == 0, crawled.output
        assert "Crawled 2 files" in crawled.output
        assert len(staging.read_text(encoding="utf-8").splitlines()) == 2

        finished = runner.invoke(
            cli, ["finish-scan", scan_id, "--input", str(staging), "--database", db_path]
        )

        assert finished.exit_code == 0, finished.output
        assert "Scan 1 complete" in finished.output
        assert "Added: 2" in finished.output
        assert not staging.exists()

        status = runner.invoke(cli, ["status", "--database", db_path])
        assert "finalized" in status.output

    def test_finish_keeps_input_on_request(self, runner: CliRunner, tmp_path: Path):
        root = tmp_path / "data"
        root.mkdir()
        db_path = str(tmp_path / "fsdelta.db")
        staging = tmp_path / "scan.tsv"
        runner.invoke(cli, ["start-scan", str(root), "--database", db_path])
        runner.invoke(cli, ["crawl", str(root), "--scan-id", "1", "--output", str(staging)])

        result = runner.invoke(
            cli, ["finish-scan", "1", "--input", str(staging), "--keep-input", "--database", db_path]
        )

        assert result.exit_code == 0, result.output
        assert "Total files: 0" in result.output
        assert staging.exists()

    def test_start_scan_missing_root(self, runner: CliRunner, tmp_path: Path):
        db_path = str(tmp_path / "fsdelta.db")

        result = runner.invoke(cli, ["start-scan", str(tmp_path / "missing"), "--database", db_path])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_crawl_missing_root(self, runner: CliRunner, tmp_path: Path):
        output = tmp_path / "scan.tsv"

        result = runner.invoke(
            cli, ["crawl", str(tmp_path / "missing"), "--scan-id", "1", "--output", str(output)]
        )

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert not output.exists()

    def test_finish_unknown_scan(self, runner: CliRunner, tmp_path: Path):
        staging = tmp_path / "scan.tsv"
        staging.write_text("", encoding="utf-8")

        result = runner.invoke(
            cli, ["finish-scan", "9", "--input", str(staging), "--database", str(tmp_path / "fsdelta.db")]
        )

        assert result.exit_code == 1
        assert "Scan 9 does not exist" in result.output
        assert staging.exists()

    def test_finish_missing_input(self, runner: CliRunner, tmp_path: Path):
        root = tmp_path / "data"
        root.mkdir()
        db_path = str(tmp_path / "fsdelta.db")
        runner.invoke(cli, ["start-scan", str(root), "--database", db_path])

        result = runner.invoke(
            cli, ["finish-scan", "1", "--input", str(tmp_path / "missing.tsv"), "--database", db_path]
        )

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestDatabaseErrors:
    """Tests for databases that cannot be opened."""

    def test_scan_reports_unopenable_database(self, runner: CliRunner, tmp_path: Path):
        root = tmp_path / "data"
        root.mkdir()
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        args = _scan_args(tmp_path, root)
        args[args.index("--database") + 1] = str(blocker / "fsdelta.db")

        result = runner.invoke(cli, args)

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert not isinstance(result.exception, OSError)

    def test_init_db_reports_unopenable_database(self, runner: CliRunner, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        result = runner.invoke(cli, ["init-db", "--database", str(blocker / "fsdelta.db")])

        assert result.exit_code == 1
        assert "Error:" in result.output
