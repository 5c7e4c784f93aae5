"""Progress reporting for a running crawl."""

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

Report = Callable[[str], None]


class ProgressCounter:
    """Monotonic count of records emitted by traversal workers."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    @property
    def value(self) -> int:
        return self._value


class ProgressMonitor:
    """Periodically reports crawl throughput until told to stop.

    The monitor runs on its own schedule and only reads the shared counter,
    so a report may lag the true count slightly.
    """

    def __init__(
        self,
        counter: ProgressCounter,
        interval: float = 30.0,
        report: Report | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.counter = counter
        self.interval = interval
        self.report = report or logger.info
        self.clock = clock
        self.reports_emitted = 0
        self._stop = threading.Event()
        # Held while emitting; stop() takes it so no line follows a stop.
        self._emit_lock = threading.RLock()

    def run(self) -> None:
        start = self.clock()
        last_count = 0
        last_time = start

        while not self._stop.wait(self.interval):
            with self._emit_lock:
                now = self.clock()
                total = self.counter.value
                if self._stop.is_set():
                    break
                self.report(
                    format_progress(
                        total=total,
                        elapsed=now - start,
                        interval_count=total - last_count,
                        interval_seconds=now - last_time,
                    )
                )
                self.reports_emitted += 1
            last_count = total
            last_time = now

    def stop(self) -> None:
        with self._emit_lock:
            self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def report_summary(self, total: int, elapsed: float) -> None:
        self.report(format_summary(total, elapsed))


def format_progress(
    total: int,
    elapsed: float,
    interval_count: int,
    interval_seconds: float,
) -> str:
    rate_now = interval_count / max(interval_seconds, 1e-9)
    rate_all = total / max(elapsed, 1e-9)
    return (
        f"Progress: {total:,} files in {format_duration(elapsed)}, "
        f"{rate_now:.1f} f/s (last {interval_seconds:.0f}s), {rate_all:.1f} f/s (overall)"
    )


def format_summary(total: int, elapsed: float) -> str:
    return (
        f"Final stats: {total:,} files in {elapsed:.1f}s "
        f"({files_per_second(total, elapsed):.1f} f/s)"
    )


def files_per_second(total: int, elapsed: float) -> float:
    if elapsed <= 0:
        return 0.0
    return total / elapsed


def format_duration(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
