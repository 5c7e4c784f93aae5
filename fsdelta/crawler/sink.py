"""Multi-producer record channel and the single sink writer draining it."""

import logging
import queue
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Self

from fsdelta.crawler.records import Record
from fsdelta.errors import ChannelClosedError, WriterIOError

logger = logging.getLogger(__name__)

_CLOSED = object()


class RecordChannel:
    """Queue of records fed by many senders and drained by one reader.

    The channel closes itself when the last open sender is released. The
    reader then sees the end of the stream after every record sent before
    that point.
    """

    def __init__(self, capacity: int = 0):
        self._queue: queue.Queue = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self._open_senders = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def sender(self) -> "RecordSender":
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Cannot open a sender on a closed channel")
            self._open_senders += 1
        return RecordSender(self)

    def _put(self, record: Record) -> None:
        self._queue.put(record)

    def _release(self) -> None:
        with self._lock:
            self._open_senders -= 1
            if self._open_senders > 0:
                return
            self._closed = True
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[Record]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item


class RecordSender:
    """A producer's handle on a RecordChannel."""

    def __init__(self, channel: RecordChannel):
        self._channel = channel
        self._released = False

    def send(self, record: Record) -> None:
        if self._released:
            raise ChannelClosedError("Sender was already released")
        self._channel._put(record)

    def close(self) -> None:
        if not self._released:
            self._released = True
            self._channel._release()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SinkWriter:
    """Writes every record from a channel to a line-oriented staging artifact."""

    def __init__(self, output_path: Path, channel: RecordChannel):
        self.output_path = output_path
        self.channel = channel
        self.records_written = 0
        self.failed = threading.Event()

    def run(self) -> int:
        """Drain the channel until it closes. Returns the number of lines written.

        After an I/O failure the remaining records are still drained, and
        discarded, so producers never block on a full channel. WriterIOError
        is raised once the channel has closed.
        """
        error: OSError | None = None
        out = None
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            out = open(self.output_path, "w", encoding="utf-8", newline="\n")
        except OSError as e:
            error = self._fail(e)

        for record in self.channel:
            if error is not None:
                continue
            try:
                out.write(record.to_line())
            except OSError as e:
                error = self._fail(e)
            else:
                self.records_written += 1

        if out is not None:
            try:
                out.close()
            except OSError as e:
                error = error or self._fail(e)

        if error is not None:
            raise WriterIOError(
                f"Failed to write staging artifact {self.output_path}: {error}"
            ) from error

        logger.debug("Wrote %d records to %s", self.records_written, self.output_path)
        return self.records_written

    def _fail(self, error: OSError) -> OSError:
        self.failed.set()
        logger.error("Writing %s failed: %s", self.output_path, error)
        return error
