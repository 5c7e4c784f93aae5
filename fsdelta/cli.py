"""CLI interface for fsdelta."""

import logging
import sqlite3
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from dotenv import load_dotenv

from fsdelta.config import Config
from fsdelta.crawler import CrawlCoordinator
from fsdelta.database import ChangeType, Database, MetadataStore, ScanRun, reset_schema
from fsdelta.errors import FsDeltaError
from fsdelta.logging_config import configure_logging
from fsdelta.scan import ScanOrchestrator

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(package_name="fs-delta-tracker")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Track changes to a filesystem tree between periodic scans."""
    load_dotenv()
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config()


@cli.command("init-db")
@click.option("--reset", is_flag=True, help="Drop all existing scans and file state")
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.pass_context
def init_db(ctx: click.Context, reset: bool, database: Path | None) -> None:
    """Create the database schema."""
    config: Config = ctx.obj["config"]
    db_path = database or config.database_path

    if reset:
        click.confirm(f"This will drop all data in {db_path}. Continue?", abort=True)

    try:
        with Database(db_path) as db:
            if reset:
                reset_schema(db.conn)
    except (OSError, sqlite3.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Database initialized: {db_path}")


@cli.command()
@click.argument("data_root", envvar="DATA_ROOT", type=click.Path(path_type=Path))
@click.option(
    "--progress-interval",
    envvar="PROGRESS_INTERVAL",
    type=float,
    default=None,
    help="Seconds between progress reports (default: 30)",
)
@click.option("--workers", envvar="CRAWL_WORKERS", type=click.IntRange(min=1), help="Traversal worker threads")
@click.option(
    "--staging-dir", envvar="STAGING_DIR", type=click.Path(path_type=Path), help="Directory for staging files"
)
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.option("--log-file", envvar="LOG_FILE", type=click.Path(path_type=Path), help="Path to log file")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to the console")
@click.pass_context
def scan(
    ctx: click.Context,
    data_root: Path,
    progress_interval: float | None,
    workers: int | None,
    staging_dir: Path | None,
    database: Path | None,
    log_file: Path | None,
    verbose: bool,
) -> None:
    """Crawl DATA_ROOT and record what changed since its previous scan."""
    config: Config = ctx.obj["config"]
    if database:
        config.database_path = database
    if staging_dir:
        config.staging_dir = staging_dir
    if log_file:
        config.log_file = log_file
    if progress_interval is not None:
        config.crawler.progress_interval = progress_interval
    if workers is not None:
        config.crawler.workers = workers

    configure_logging(config.log_file, verbose=verbose)

    logger.info("=" * 50)
    logger.info("Scanning root: %s", data_root)
    logger.info("Database: %s", config.database_path)
    logger.info("Log file: %s", config.log_file)
    logger.info("Workers: %d, progress every %ss", config.crawler.workers, config.crawler.progress_interval)
    logger.info("=" * 50)

    try:
        with Database(config.database_path) as db:
            result = ScanOrchestrator(db, config).run(data_root)
    except (FsDeltaError, OSError, sqlite3.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    _print_scan_summary(result)


def _print_scan_summary(result: ScanRun) -> None:
    click.echo()
    click.echo(f"Scan {result.scan_id} complete: {result.scan_root}")
    click.echo(f"  Total files: {result.total_paths_count:,}")
    click.echo(f"  Added: {result.added_files_count:,} ({result.new_data_mb:.2f} MB)")
    click.echo(f"  Modified: {result.modified_files_count:,} ({result.modified_data_mb:.2f} MB)")
    click.echo(f"  Deleted: {result.removed_files_count:,} ({result.deleted_data_mb:.2f} MB)")


@cli.command("start-scan")
@click.argument("data_root", envvar="DATA_ROOT", type=click.Path(path_type=Path))
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.pass_context
def start_scan(ctx: click.Context, data_root: Path, database: Path | None) -> None:
    """Open a scan of DATA_ROOT and print its scan id.

    Pair with 'crawl' and 'finish-scan' to run the phases separately.
    """
    config: Config = ctx.obj["config"]
    db_path = database or config.database_path

    try:
        with Database(db_path) as db:
            scan_id = ScanOrchestrator(db, config).start(data_root)
    except (FsDeltaError, OSError, sqlite3.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(scan_id)


@cli.command("crawl")
@click.argument("data_root", envvar="DATA_ROOT", type=click.Path(path_type=Path))
@click.option("--scan-id", type=int, required=True, help="Scan id to tag every record with")
@click.option(
    "--output", type=click.Path(path_type=Path), required=True, help="Staging file to write"
)
@click.option(
    "--progress-interval",
    envvar="PROGRESS_INTERVAL",
    type=float,
    default=None,
    help="Seconds between progress reports (default: 30)",
)
@click.option("--workers", envvar="CRAWL_WORKERS", type=click.IntRange(min=1), help="Traversal worker threads")
@click.option("--log-file", envvar="LOG_FILE", type=click.Path(path_type=Path), help="Path to log file")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to the console")
@click.pass_context
def crawl_files(
    ctx: click.Context,
    data_root: Path,
    scan_id: int,
    output: Path,
    progress_interval: float | None,
    workers: int | None,
    log_file: Path | None,
    verbose: bool,
) -> None:
    """Crawl DATA_ROOT into a staging file without touching the database."""
    config: Config = ctx.obj["config"]
    if log_file:
        config.log_file = log_file
    if progress_interval is not None:
        config.crawler.progress_interval = progress_interval
    if workers is not None:
        config.crawler.workers = workers

    configure_logging(config.log_file, verbose=verbose)

    try:
        result = CrawlCoordinator(config.crawler).crawl(data_root.resolve(), scan_id, output)
    except (FsDeltaError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)

    click.echo(f"Crawled {result.total_files:,} files into {output}")


@cli.command("finish-scan")
@click.argument("scan_id", type=int)
@click.option(
    "--input",
    "input_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Staging file written by 'crawl'",
)
@click.option("--keep-input", is_flag=True, help="Keep the staging file after finalizing")
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.option("--log-file", envvar="LOG_FILE", type=click.Path(path_type=Path), help="Path to log file")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to the console")
@click.pass_context
def finish_scan(
    ctx: click.Context,
    scan_id: int,
    input_path: Path,
    keep_input: bool,
    database: Path | None,
    log_file: Path | None,
    verbose: bool,
) -> None:
    """Load a staging file into scan SCAN_ID, compute its changes and finalize it."""
    config: Config = ctx.obj["config"]
    if database:
        config.database_path = database
    if log_file:
        config.log_file = log_file

    configure_logging(config.log_file, verbose=verbose)

    try:
        with Database(config.database_path) as db:
            result = ScanOrchestrator(db, config).finish(scan_id, input_path, keep_artifact=keep_input)
    except (FsDeltaError, OSError, sqlite3.Error) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _print_scan_summary(result)


@cli.command()
@click.option("--limit", type=int, default=20, help="Number of scans to show")
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.pass_context
def status(ctx: click.Context, limit: int, database: Path | None) -> None:
    """List recent scans, newest first."""
    config: Config = ctx.obj["config"]
    db_path = database or config.database_path

    if not db_path.exists():
        click.echo("No database found. Run 'fsdelta scan' first.")
        return

    with Database(db_path) as db:
        runs = MetadataStore(db).list_scan_runs(limit=limit)

    if not runs:
        click.echo("No scans found.")
        return

    click.echo("\nScans:")
    click.echo("-" * 96)
    header = "ID".rjust(6) + "  " + "Root".ljust(35) + "Status".ljust(11)
    header += "Files".rjust(10) + "Added".rjust(9) + "Modified".rjust(10) + "Deleted".rjust(9)
    header += "  " + "Started"
    click.echo(header)
    click.echo("-" * 96)

    for run in runs:
        scan_status = "finalized" if run.is_finalized else "open"
        click.echo(
            f"{run.scan_id:>6}  "
            f"{_truncate(run.scan_root, 34):<35}"
            f"{scan_status:<11}"
            f"{_format_count(run.total_paths_count):>10}"
            f"{_format_count(run.added_files_count):>9}"
            f"{_format_count(run.modified_files_count):>10}"
            f"{_format_count(run.removed_files_count):>9}"
            f"  {_format_relative_time(run.started_at)}"
        )


@cli.command()
@click.argument("scan_id", type=int)
@click.option(
    "--type",
    "change_type",
    type=click.Choice([c.value for c in ChangeType]),
    default=None,
    help="Only show one kind of change",
)
@click.option("--limit", type=int, default=None, help="Maximum number of changes to show")
@click.option(
    "--database", envvar="DATABASE_PATH", type=click.Path(path_type=Path), help="Path to database file"
)
@click.pass_context
def changes(
    ctx: click.Context,
    scan_id: int,
    change_type: str | None,
    limit: int | None,
    database: Path | None,
) -> None:
    """List the file changes recorded by scan SCAN_ID."""
    config: Config = ctx.obj["config"]
    db_path = database or config.database_path

    if not db_path.exists():
        click.echo("Error: No database found. Run 'fsdelta scan' first.", err=True)
        sys.exit(1)

    with Database(db_path) as db:
        store = MetadataStore(db)
        if store.get_scan_run(scan_id) is None:
            click.echo(f"Error: No scan with id {scan_id}.", err=True)
            sys.exit(1)
        rows = store.list_changes(
            scan_id,
            change_type=ChangeType(change_type) if change_type else None,
            limit=limit,
        )

    if not rows:
        click.echo(f"No changes recorded for scan {scan_id}.")
        return

    for change in rows:
        old = _format_count(change.old_size_bytes)
        new = _format_count(change.new_size_bytes)
        click.echo(f"{change.change_type.value:<9} {old:>14} -> {new:<14} {change.file_path}")


def _format_count(value: int | None) -> str:
    if value is None:
        return "-"
    return f"{value:,}"


def _format_relative_time(timestamp: str | None) -> str:
    if not timestamp:
        return "unknown"

    try:
        then = datetime.fromisoformat(timestamp)
    except ValueError:
        return timestamp
    delta = datetime.now(timezone.utc) - then

    if delta.days > 1:
        return f"{delta.days} days ago"
    if delta.days == 1:
        return "yesterday"
    if delta.seconds > 3600:
        hours = delta.seconds // 3600
        return f"{hours}h ago"
    if delta.seconds > 60:
        minutes = delta.seconds // 60
        return f"{minutes}m ago"
    return "just now"


def _truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return "..." + text[-(max_len - 3) :]


def main() -> None:
    """Entry point for the CLI."""
    cli(standalone_mode=True)  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
