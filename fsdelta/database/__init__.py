"""Database module for fsdelta."""

from .connection import Database
from .models import CategoryAggregate, ChangeType, FileChange, ScanRun, ScanState
from .schema import create_schema, reset_schema
from .store import MetadataStore

__all__ = [
    "Database",
    "MetadataStore",
    "create_schema",
    "reset_schema",
    "CategoryAggregate",
    "ChangeType",
    "FileChange",
    "ScanRun",
    "ScanState",
]
