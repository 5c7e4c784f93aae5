"""Crawler module for concurrent filesystem traversal."""

from .coordinator import CrawlCoordinator, CrawlResult, crawl
from .progress import ProgressCounter, ProgressMonitor
from .records import Record, file_extension
from .sink import RecordChannel, RecordSender, SinkWriter
from .traversal import TraversalEngine

__all__ = [
    "CrawlCoordinator",
    "CrawlResult",
    "crawl",
    "ProgressCounter",
    "ProgressMonitor",
    "Record",
    "file_extension",
    "RecordChannel",
    "RecordSender",
    "SinkWriter",
    "TraversalEngine",
]
