"""fs-delta-tracker - Tracks changes to a filesystem tree between periodic scans."""

__version__ = "0.1.0"

from fsdelta.database import Database
from fsdelta.scan import ScanOrchestrator

__all__ = ["Database", "ScanOrchestrator"]
