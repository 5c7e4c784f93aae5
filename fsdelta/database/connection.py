"""Database connection management."""

import logging
import sqlite3
from pathlib import Path
from typing import Self

from .schema import create_schema

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class Database:
    """SQLite connection wrapper shared by concurrent scans of one store.

    Connections run in WAL mode so status queries can read while a scan is
    loading, and wait up to `timeout` seconds for another scan's write
    transaction instead of failing with "database is locked".
    """

    def __init__(self, db_path: Path, timeout: float = DEFAULT_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA busy_timeout = {int(self.timeout * 1000)}")
            mode = conn.execute("PRAGMA journal_mode = WAL").fetchone()[0]
            if mode != "wal":
                logger.warning("WAL journal unavailable for %s, using %s", self.db_path, mode)
            create_schema(conn)
            self._conn = conn
        return self._conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
