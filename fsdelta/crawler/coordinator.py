"""Runs one crawl: traversal workers, the sink writer and the progress monitor.

Shutdown is strictly ordered. The walk returns only after every worker has
released its sender; the coordinator then releases its own sender, which
closes the channel and lets the writer flush. Only once the writer has
finished is the monitor stopped and the final summary reported.
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from fsdelta.config import CrawlerConfig
from fsdelta.crawler.progress import (
    ProgressCounter,
    ProgressMonitor,
    Report,
    files_per_second,
)
from fsdelta.crawler.sink import RecordChannel, SinkWriter
from fsdelta.crawler.traversal import TraversalEngine
from fsdelta.errors import RootNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class CrawlResult:
    """Totals for a completed crawl."""

    data_root: str
    output_path: Path
    total_files: int
    elapsed_seconds: float

    @property
    def files_per_second(self) -> float:
        return files_per_second(self.total_files, self.elapsed_seconds)

    def to_metadata(self) -> dict[str, str]:
        return {
            "data_root": self.data_root,
            "crawl_timer_duration_s": str(self.elapsed_seconds),
            "total_files_processed": str(self.total_files),
            "crawler_files_per_second": str(self.files_per_second),
        }


class CrawlCoordinator:
    """Crawls a root into a staging artifact."""

    def __init__(
        self,
        config: CrawlerConfig,
        report: Report | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.report = report
        self.clock = clock
        self.engine = TraversalEngine(
            workers=config.workers,
            max_path_length=config.max_path_length,
        )

    def crawl(self, root: Path, scan_id: int, output_path: Path) -> CrawlResult:
        if not root.is_dir():
            raise RootNotFoundError(root)

        counter = ProgressCounter()
        channel = RecordChannel(capacity=self.config.channel_capacity)
        sender = channel.sender()
        writer = SinkWriter(output_path, channel)
        monitor = ProgressMonitor(
            counter,
            interval=self.config.progress_interval,
            report=self.report,
            clock=self.clock,
        )

        start = self.clock()
        logger.debug("Starting crawl of %s into %s", root, output_path)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="fsdelta-crawl") as background:
            writer_task = background.submit(writer.run)
            monitor_task = background.submit(monitor.run)
            try:
                try:
                    self.engine.walk(root, scan_id, channel, counter, abort=writer.failed)
                finally:
                    logger.debug("Directory walk finished, closing record channel")
                    sender.close()
                    total = writer_task.result()
            finally:
                logger.debug("Stopping progress monitor")
                monitor.stop()
                monitor_task.result()

        elapsed = self.clock() - start
        monitor.report_summary(total, elapsed)

        return CrawlResult(
            data_root=str(root),
            output_path=output_path,
            total_files=total,
            elapsed_seconds=elapsed,
        )


def crawl(
    root: Path,
    scan_id: int,
    output_path: Path,
    config: CrawlerConfig | None = None,
    report: Report | None = None,
) -> CrawlResult:
    """Crawl root with a default coordinator."""
    return CrawlCoordinator(config or CrawlerConfig(), report=report).crawl(root, scan_id, output_path)
