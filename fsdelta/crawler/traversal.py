"""Parallel directory traversal producing file records."""

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from fsdelta.crawler.progress import ProgressCounter
from fsdelta.crawler.records import Record, file_extension, format_mtime
from fsdelta.crawler.sink import RecordChannel, RecordSender
from fsdelta.errors import EntryUnreadableError, RootNotFoundError, TraversalError

logger = logging.getLogger(__name__)

_STOP = object()


class TraversalEngine:
    """Walks a directory tree with a pool of worker threads.

    Each worker takes a directory off a shared queue, emits one Record per
    regular file in it and queues its subdirectories. The walk is complete
    when every queued directory has been processed. Symbolic links are never
    followed or emitted; hard links yield one Record per path.
    """

    def __init__(self, workers: int = 8, max_path_length: int = 4096):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.workers = workers
        self.max_path_length = max_path_length

    def walk(
        self,
        root: Path,
        scan_id: int,
        channel: RecordChannel,
        counter: ProgressCounter,
        abort: threading.Event | None = None,
    ) -> None:
        """Emit a Record for every regular file under root.

        Returns once all workers have exited and released their senders,
        including when the calling thread is interrupted. Raises
        RootNotFoundError before any worker starts if root is not a
        directory, and TraversalError if the walk as a whole failed or the
        root disappeared while it was being walked.
        """
        if not root.is_dir():
            raise RootNotFoundError(root)

        abort = abort or threading.Event()
        halt = threading.Event()
        pending: queue.Queue = queue.Queue()
        errors: list[Exception] = []
        pending.put(str(root))

        logger.debug("Starting directory walk of %s with %d workers", root, self.workers)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="fsdelta-walk") as pool:
            futures = [
                pool.submit(
                    self._worker,
                    str(root),
                    scan_id,
                    pending,
                    channel.sender(),
                    counter,
                    abort,
                    halt,
                    errors,
                )
                for _ in range(self.workers)
            ]
            try:
                pending.join()
            except BaseException:
                halt.set()
                raise
            finally:
                # Queued after any leftover directories; halted workers skip those.
                for _ in futures:
                    pending.put(_STOP)
            for future in futures:
                future.result()

        if errors:
            first = errors[0]
            if isinstance(first, TraversalError):
                raise first
            raise TraversalError(f"Directory walk of {root} failed: {first}", scan_id) from first

        if not os.path.isdir(root):
            raise TraversalError(f"Scan root disappeared during walk: {root}", scan_id)

        if abort.is_set():
            raise TraversalError(f"Directory walk of {root} was aborted", scan_id)

        logger.debug("Directory walk of %s completed", root)

    def _worker(
        self,
        root: str,
        scan_id: int,
        pending: queue.Queue,
        sender: RecordSender,
        counter: ProgressCounter,
        abort: threading.Event,
        halt: threading.Event,
        errors: list[Exception],
    ) -> None:
        with sender:
            while True:
                directory = pending.get()
                try:
                    if directory is _STOP:
                        return
                    if abort.is_set() or halt.is_set():
                        continue
                    for subdir in self._scan_directory(directory, root, scan_id, sender, counter):
                        pending.put(subdir)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    errors.append(e)
                    halt.set()
                finally:
                    pending.task_done()

    def _scan_directory(
        self,
        directory: str,
        root: str,
        scan_id: int,
        sender: RecordSender,
        counter: ProgressCounter,
    ) -> list[str]:
        subdirs: list[str] = []

        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    try:
                        if _is_directory(entry):
                            subdirs.append(entry.path)
                            continue
                        record = self._process_entry(entry, scan_id)
                    except EntryUnreadableError as e:
                        logger.warning("Skipping unreadable entry: %s", e)
                        continue
                    if record is not None:
                        sender.send(record)
                        counter.increment()
        except OSError as e:
            if directory == root:
                raise TraversalError(f"Scan root became unreadable: {root}: {e}", scan_id) from e
            if isinstance(e, FileNotFoundError) and not os.path.isdir(root):
                raise TraversalError(f"Scan root disappeared during walk: {root}", scan_id) from e
            if isinstance(e, PermissionError):
                logger.warning("Permission denied scanning directory: %s", directory)
            elif isinstance(e, FileNotFoundError):
                logger.warning("Directory disappeared during scan: %s", directory)
            else:
                logger.error("Error scanning directory %s: %s", directory, e)

        return subdirs

    def _process_entry(self, entry: os.DirEntry, scan_id: int) -> Record | None:
        try:
            if not entry.is_file(follow_symlinks=False):
                return None

            if len(entry.path) > self.max_path_length:
                logger.warning("Path too long, skipping: %s", entry.path)
                return None

            entry.path.encode("utf-8")
            stat_result = entry.stat(follow_symlinks=False)
        except UnicodeEncodeError as e:
            raise EntryUnreadableError(f"{entry.path!r}: path is not valid UTF-8") from e
        except FileNotFoundError:
            logger.debug("File disappeared during scan: %s", entry.path)
            return None
        except OSError as e:
            raise EntryUnreadableError(f"{entry.path}: {e}") from e

        return Record(
            name=entry.name,
            extension=file_extension(entry.name),
            path=entry.path,
            size_bytes=stat_result.st_size,
            modified_at=format_mtime(getattr(stat_result, "st_mtime", None)),
            scan_id=scan_id,
        )


def _is_directory(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError as e:
        raise EntryUnreadableError(f"{entry.path}: {e}") from e
