"""File records emitted by the traversal and their staging line encoding."""

from dataclasses import dataclass
from datetime import datetime, timezone

UNKNOWN_EXTENSION = "unknown"
EPOCH_SENTINEL = "1970-01-01T00:00:00+00:00"
FIELD_DELIMITER = "\t"
FIELD_COUNT = 6

_ESCAPES = {"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "r": "\r"}


@dataclass(frozen=True)
class Record:
    """One regular file observed during a crawl."""

    name: str
    extension: str
    path: str
    size_bytes: int
    modified_at: str
    scan_id: int

    def to_line(self) -> str:
        fields = [
            self.name,
            self.extension,
            self.path,
            str(self.size_bytes),
            self.modified_at,
            str(self.scan_id),
        ]
        return FIELD_DELIMITER.join(escape_field(f) for f in fields) + "\n"

    @classmethod
    def from_line(cls, line: str) -> "Record":
        """Parse one staging line back into a Record.

        Raises ValueError on a malformed line.
        """
        fields = line.rstrip("\n").split(FIELD_DELIMITER)
        if len(fields) != FIELD_COUNT:
            raise ValueError(f"Expected {FIELD_COUNT} fields, got {len(fields)}")

        name, extension, path, size, modified_at, scan_id = (unescape_field(f) for f in fields)
        size_bytes = int(size)
        if size_bytes < 0:
            raise ValueError(f"Negative size: {size_bytes}")

        return cls(
            name=name,
            extension=extension,
            path=path,
            size_bytes=size_bytes,
            modified_at=modified_at,
            scan_id=int(scan_id),
        )


def file_extension(filename: str) -> str:
    """Return the lowercased extension of a file name, or UNKNOWN_EXTENSION."""
    dot_index = filename.rfind(".")

    if dot_index <= 0 or dot_index == len(filename) - 1:
        return UNKNOWN_EXTENSION

    return filename[dot_index + 1 :].lower()


def format_mtime(mtime: float | None) -> str:
    if mtime is None:
        return EPOCH_SENTINEL
    try:
        moment = datetime.fromtimestamp(int(mtime), tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return EPOCH_SENTINEL
    return moment.isoformat()


def escape_field(value: str) -> str:
    if not any(ch in value for ch in _ESCAPES):
        return value
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def unescape_field(value: str) -> str:
    if "\\" not in value:
        return value

    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        code = next(chars, None)
        if code not in _UNESCAPES:
            raise ValueError(f"Invalid escape sequence in field: {value!r}")
        out.append(_UNESCAPES[code])
    return "".join(out)
