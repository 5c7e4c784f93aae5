"""Exception types raised by fsdelta."""

from pathlib import Path


class FsDeltaError(Exception):
    """Base class for all fsdelta errors."""


class RootNotFoundError(FsDeltaError):
    """Raised when the crawl root does not exist or is not a directory."""

    def __init__(self, root: str | Path):
        super().__init__(f"Scan root does not exist or is not a directory: {root}")
        self.root = str(root)


class EntryUnreadableError(FsDeltaError):
    """Raised for a single directory entry that cannot be typed or stat'ed.

    Never escapes the traversal engine.
    """


class ChannelClosedError(RuntimeError):
    """Raised when a record is sent after its sender or channel was closed."""


class PhaseError(FsDeltaError):
    """A fatal error in one phase of a scan's lifecycle."""

    phase = "unknown"

    def __init__(self, message: str, scan_id: int | None = None):
        super().__init__(message)
        self.scan_id = scan_id


class TraversalError(PhaseError):
    """The traversal as a whole failed, e.g. the root vanished mid-walk."""

    phase = "crawling"


class WriterIOError(PhaseError):
    """The sink writer could not write the staging artifact."""

    phase = "crawling"


class ScanAllocationError(PhaseError):
    """A scan run row could not be allocated."""

    phase = "created"


class LoadError(PhaseError):
    """The staging artifact could not be loaded in full."""

    phase = "loading"


class DiffComputationError(PhaseError):
    """The delta computation failed."""

    phase = "diffing"


class FinalizeError(PhaseError):
    """The scan run could not be finalized."""

    phase = "finalized"


class CleanupError(FsDeltaError):
    """Releasing temporary resources failed. Logged, never fatal."""
