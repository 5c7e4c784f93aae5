"""Scan lifecycle orchestration."""

from .lifecycle import ScanOrchestrator, get_hostname

__all__ = ["ScanOrchestrator", "get_hostname"]
