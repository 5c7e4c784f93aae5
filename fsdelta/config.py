"""Configuration module for fsdelta."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path


def _get_project_root() -> Path:
    return Path(__file__).parent.parent


def _default_workers() -> int:
    return max(2, min(32, (os.cpu_count() or 1) * 2))


@dataclass
class CrawlerConfig:
    progress_interval: float = 30.0
    workers: int = field(default_factory=_default_workers)
    channel_capacity: int = 0
    max_path_length: int = 4096


@dataclass
class Config:
    database_path: Path = field(default_factory=lambda: _get_project_root() / "data" / "fsdelta.db")
    staging_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    log_file: Path = field(default_factory=lambda: Path("logs") / "app.log")
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)

    def staging_artifact(self, scan_id: int) -> Path:
        return self.staging_dir / f"scan_{scan_id}.tsv"
